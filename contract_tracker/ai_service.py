import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError as SchemaValidationError
from . import config
from .errors import ContractTrackerError, ExtractionFailed, Failure, TransportError, UnparsableResponse
from .extraction import extract_document_text
from .schemas import AssessmentAnalysis, ComparisonAnalysis, QueryAnalysis

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = [
    "auto-renewal clauses and terms",
    "cancellation notice requirements",
    "liability limitations",
    "payment terms and conditions",
    "concerning or unusual clauses",
    "jurisdiction and governing law",
]

# Keeps a single request well inside the model's context window
MAX_DOCUMENT_CHARS = 150_000

SYSTEM_PROMPT = """You are a legal contract analyst helping a contract management team track vendor and customer agreements. You review contracts carefully, flag anything that could cause problems down the road, and always answer with a single JSON object in the exact format requested."""

ASSESSMENT_PROMPT = """I need you to carefully review this contract document and provide a comprehensive assessment.

Please analyze the document for the following:
{criteria}

Provide your analysis in the following JSON format:
{{
  "summary": "Brief 2-3 sentence overall summary of the contract",
  "riskLevel": "low|medium|high",
  "findings": [
    {{
      "type": "concern|warning|info",
      "category": "auto-renewal|cancellation|liability|pricing|other",
      "description": "Clear description of the finding",
      "severity": "low|medium|high",
      "excerpt": "Relevant quote from the contract",
      "recommendation": "What action should be taken"
    }}
  ],
  "keyTerms": {{
    "autoRenewal": "Yes/No and details",
    "renewalPeriod": "Duration if auto-renew exists",
    "cancellationNotice": "Number of days and any special requirements",
    "paymentTerms": "Net 30, Net 60, etc.",
    "liabilityLimits": "Any liability caps or exclusions",
    "jurisdiction": "Which state/country law governs"
  }}
}}

Focus especially on identifying any concerning clauses that might be disadvantageous, such as:
- Unusually long auto-renewal periods
- Short cancellation notice windows
- Broad liability waivers
- Automatic price increases
- One-sided termination rights
- Unusual jurisdiction clauses

Be thorough but concise."""

FOCUS_PROMPTS = {
    "terms": """Compare these contracts focusing on:
- Key terms and conditions
- Payment terms and pricing
- Contract duration and renewal terms
- Cancellation and termination clauses
- Any significant differences in obligations""",
    "risks": """Compare these contracts focusing on risk factors:
- Liability limitations and indemnification
- Insurance requirements
- Warranty provisions
- Dispute resolution mechanisms
- Any concerning or unfavorable clauses""",
    "pricing": """Compare these contracts focusing on financial terms:
- Pricing structure and rates
- Payment terms and schedules
- Price increase provisions
- Additional fees or charges
- Cost comparison and value analysis""",
    "favorable": """Analyze which contract is most favorable to {organization}:
- Better terms and conditions
- Lower risk exposure
- More flexible cancellation
- Better pricing
- Overall recommendation""",
}

MODE_EXTRAS = {
    ("terms", "proposals"): "- Recommend which proposal offers the best value",
    ("terms", "renewal"): "- Is the new proposal better or worse than the existing contract?",
    ("risks", "renewal"): "- Does the new proposal increase or decrease risk exposure?",
    ("pricing", "renewal"): "- Is the new pricing better, worse, or comparable?",
    ("favorable", "renewal"): "- Should {organization} accept the renewal or negotiate/seek alternatives?",
}

MODE_SUBJECTS = {
    "existing": "existing contracts",
    "proposals": "new vendor proposals",
    "renewal": "a renewal proposal against the existing contract",
}

COMPARISON_FORMAT = """Provide a comprehensive comparison in JSON format:
{{
  "summary": "Overall comparison summary with clear recommendation",
  "contracts": [
    {{
      "name": "Contract name",
      "strengths": ["strength 1", "strength 2"],
      "weaknesses": ["weakness 1", "weakness 2"],
      "keyTerms": ["term 1", "term 2"],
      "score": 7
    }}
  ],
  "keyDifferences": [
    {{
      "category": "category name",
      "description": "detailed description of differences",
      "impact": "low|medium|high",
      "favorsBuyer": true
    }}
  ],
  "recommendation": "{recommendation}",
  "concerns": ["concern 1", "concern 2"],
  "actionItems": ["action 1", "action 2"]
}}

"score" is an integer from 1 to 10 rating favorability to {organization}."""

QUERY_PROMPT = """I have a database of contracts and need you to answer a question about them.

Here is the contract data:
{contracts}

User question: {question}

Please analyze the contracts and provide:
1. A direct answer to the question
2. A list of relevant contracts with key details
3. Any important observations or warnings

Format your response as JSON:
{{
  "answer": "Direct answer to the question",
  "relevantContracts": [
    {{
      "id": "contract id",
      "name": "contract name",
      "reason": "why this contract is relevant",
      "keyDetails": "important details to note"
    }}
  ],
  "observations": ["any important patterns or concerns"]
}}"""


@dataclass
class DocumentInput:
    """A raw contract document that still needs text extraction"""
    data: bytes
    file_type: str = "pdf"
    filename: Optional[str] = None


@dataclass
class ComparisonItem:
    """One side of a comparison: a raw document, or stored metadata when there is none"""
    name: str
    kind: str = "existing"
    document: Optional[bytes] = None
    media_type: str = "application/pdf"
    metadata: Optional[Dict[str, Any]] = None

    @property
    def has_document(self) -> bool:
        return self.document is not None


@dataclass
class AssessmentResult:
    analysis: AssessmentAnalysis
    assessment_criteria: List[str]
    model_used: str
    success: bool = True

    def to_record(self, contract_id: Optional[str] = None, file_name: Optional[str] = None) -> Dict[str, Any]:
        """Assessment fields in the shape the repository stores"""
        return {
            "contract_id": contract_id,
            "summary": self.analysis.summary,
            "risk_level": self.analysis.risk_level,
            "findings": [finding.model_dump() for finding in self.analysis.findings],
            "key_terms": self.analysis.key_terms,
            "assessment_criteria": self.assessment_criteria,
            "model_used": self.model_used,
            "file_name": file_name,
        }


@dataclass
class ComparisonResult:
    comparison: ComparisonAnalysis
    focus: str
    mode: str
    model_used: str
    success: bool = True


@dataclass
class QueryResult:
    result: QueryAnalysis
    model_used: str
    success: bool = True


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced {...} span in text, or None.

    Unlike a greedy first-"{"-to-last-"}" match, this stops at the brace that
    closes the first object, and braces inside JSON string literals are
    skipped once the span has started. Like the greedy match it always starts
    at the first "{", so brace-delimited prose ahead of the real object is
    still picked up and the response then fails to parse.
    """
    if not text:
        return None
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_model_json(text: str, schema):
    """Locate the JSON object in a model response and validate it against schema"""
    span = extract_json_object(text)
    if span is None:
        raise UnparsableResponse("Could not find a JSON object in the model response")
    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        raise UnparsableResponse(f"Model response is not valid JSON: {e}") from e
    try:
        return schema.model_validate(data)
    except SchemaValidationError as e:
        raise UnparsableResponse(f"Model response does not match the expected shape: {e}") from e


def build_assessment_prompt(criteria: Sequence[str]) -> str:
    numbered = "\n".join(f"{i}. {c}" for i, c in enumerate(criteria, start=1))
    return ASSESSMENT_PROMPT.format(criteria=numbered)


def build_comparison_prompt(items: Sequence[ComparisonItem], focus: str, mode: str, organization: str) -> str:
    body = FOCUS_PROMPTS[focus].format(organization=organization)
    extra = MODE_EXTRAS.get((focus, mode))
    if extra:
        body = f"{body}\n{extra.format(organization=organization)}"
    listing = "\n".join(
        f"Contract {i}: {item.name}\n"
        + ("[Full document provided for analysis]" if item.has_document else "[Metadata provided above]")
        for i, item in enumerate(items, start=1)
    )
    if mode == "renewal":
        recommendation = "Accept renewal, negotiate changes, or seek alternatives"
    else:
        recommendation = f"Which contract is best for {organization} and why"
    output_format = COMPARISON_FORMAT.format(recommendation=recommendation, organization=organization)
    return (
        f"You are comparing {MODE_SUBJECTS[mode]} for {organization}.\n\n"
        f"{body}\n\nContracts to compare:\n{listing}\n\n{output_format}"
    )


def build_comparison_content(items: Sequence[ComparisonItem], focus: str, mode: str, organization: str) -> List[Dict[str, Any]]:
    """Document blocks first, then metadata blocks, then the instructions.

    Within each group items keep their relative order; the numbering used in
    filenames and labels is the item's position in items.
    """
    documents = []
    metadata_blocks = []
    for i, item in enumerate(items, start=1):
        if item.has_document:
            encoded = base64.b64encode(item.document).decode("ascii")
            documents.append({
                "type": "file",
                "file": {
                    "filename": f"contract-{i}.pdf",
                    "file_data": f"data:{item.media_type};base64,{encoded}",
                },
            })
        else:
            metadata = json.dumps(item.metadata or {}, indent=2, default=str)
            metadata_blocks.append({
                "type": "text",
                "text": f"Contract {i}: {item.name} ({item.kind})\nMetadata: {metadata}",
            })
    prompt = {"type": "text", "text": build_comparison_prompt(items, focus, mode, organization)}
    return documents + metadata_blocks + [prompt]


def contract_metadata(contract) -> Dict[str, Any]:
    """Fields of a stored contract the model sees when no document is available"""
    def iso(value):
        return value.isoformat() if value else None

    return {
        "id": contract.id,
        "name": contract.name,
        "type": contract.type,
        "contractType": contract.contract_type,
        "startDate": iso(contract.start_date),
        "endDate": iso(contract.end_date),
        "renewalDate": iso(contract.renewal_date),
        "autoRenewal": contract.auto_renewal,
        "autoRenewalPeriod": contract.auto_renewal_period,
        "cancellationNoticeDays": contract.cancellation_notice_days,
        "status": contract.status,
        "riskLevel": contract.risk_level,
        "assessmentSummary": contract.assessment_summary,
        "serviceType": contract.service_type,
        "tags": contract.tags,
    }


class ContractAIService:
    """Assessment, comparison and question answering over contracts using OpenAI models"""

    def __init__(
        self,
        client=None,
        extractor: Optional[Callable[[bytes, str], str]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        organization: Optional[str] = None,
    ):
        self.model = model or config.AI_MODEL
        self.max_tokens = max_tokens or config.AI_MAX_TOKENS
        self.organization = organization or config.ORGANIZATION_NAME
        self.extractor = extractor or extract_document_text
        if client is not None:
            self.client = client
        elif config.OPENAI_API_KEY:
            self.client = AsyncOpenAI(api_key=config.OPENAI_API_KEY)
        else:
            logger.warning("OPENAI_API_KEY not found in environment variables")
            self.client = None

    def is_available(self) -> bool:
        """Check if the model provider is configured"""
        return self.client is not None

    async def _complete(self, messages: List[Dict[str, Any]]) -> str:
        if not self.is_available():
            raise TransportError("AI service not available - API key not configured")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.2,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            raise TransportError(f"AI provider error: {e}") from e
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UnparsableResponse("No text response from the model")
        return content

    async def _document_text(self, document: Union[str, DocumentInput]) -> str:
        if isinstance(document, str):
            text, label = document, "TEXT"
        else:
            label = document.file_type.upper()
            try:
                text = await asyncio.to_thread(self.extractor, document.data, document.file_type)
            except ExtractionFailed:
                raise
            except Exception as e:
                raise ExtractionFailed(f"Failed to extract text from {label}: {e}") from e
        if not text or not text.strip():
            raise ExtractionFailed(f"No text could be extracted from the {label}")
        if len(text) > MAX_DOCUMENT_CHARS:
            text = text[:MAX_DOCUMENT_CHARS] + "\n\n[Text truncated for analysis...]"
        return text

    async def assess(self, document: Union[str, DocumentInput], criteria: Optional[Sequence[str]] = None):
        """Assess one contract document against criteria (the six defaults when empty)"""
        criteria_used = list(criteria) if criteria else list(DEFAULT_CRITERIA)
        try:
            text = await self._document_text(document)
            prompt = build_assessment_prompt(criteria_used)
            content = await self._complete([
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"{prompt}\n\nCONTRACT TEXT:\n{text}"},
            ])
            analysis = parse_model_json(content, AssessmentAnalysis)
        except ContractTrackerError as e:
            logger.error("Contract assessment failed (%s): %s", e.kind, e.message)
            return Failure.from_exception(e)
        return AssessmentResult(analysis=analysis, assessment_criteria=criteria_used, model_used=self.model)

    async def compare(self, items: Sequence[ComparisonItem], focus: str, mode: str):
        """Compare two or more contracts. Callers make sure there are at least two items."""
        if focus not in FOCUS_PROMPTS or mode not in MODE_SUBJECTS:
            return Failure(error="validation_error", message=f"Unsupported comparison focus/mode: {focus}/{mode}")
        try:
            content = await self._complete([
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_comparison_content(items, focus, mode, self.organization)},
            ])
            comparison = parse_model_json(content, ComparisonAnalysis)
        except ContractTrackerError as e:
            logger.error("Contract comparison failed (%s): %s", e.kind, e.message)
            return Failure.from_exception(e)
        return ComparisonResult(comparison=comparison, focus=focus, mode=mode, model_used=self.model)

    async def query_contracts(self, question: str, contracts: Sequence[Dict[str, Any]]):
        """Answer a free-text question using contract metadata"""
        prompt = QUERY_PROMPT.format(contracts=json.dumps(list(contracts), indent=2, default=str), question=question)
        try:
            content = await self._complete([
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ])
            result = parse_model_json(content, QueryAnalysis)
        except ContractTrackerError as e:
            logger.error("Contract query failed (%s): %s", e.kind, e.message)
            return Failure.from_exception(e)
        return QueryResult(result=result, model_used=self.model)

    async def forward(self, messages: List[Dict[str, Any]], max_tokens: int, model: Optional[str] = None) -> Dict[str, Any]:
        """Send a raw message list to the provider and return its response unmodified.

        Provider errors are raised to the caller so the HTTP status can be passed through.
        """
        if not self.is_available():
            raise TransportError("AI service not available - API key not configured")
        response = await self.client.chat.completions.create(
            model=model or self.model,
            messages=messages,
            max_tokens=max_tokens,
        )
        return response.model_dump()


# Global instance
ai_service = ContractAIService()


def get_ai_service() -> ContractAIService:
    return ai_service

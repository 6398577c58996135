import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from contract_tracker.ai_service import (
    DEFAULT_CRITERIA,
    AssessmentResult,
    ComparisonItem,
    ContractAIService,
    DocumentInput,
    build_comparison_content,
    extract_json_object,
    parse_model_json,
)
from contract_tracker.errors import UnparsableResponse
from contract_tracker.schemas import AssessmentAnalysis

ASSESSMENT_JSON = {
    "summary": "Three year hosting agreement with automatic renewal.",
    "riskLevel": "medium",
    "findings": [
        {
            "type": "concern",
            "category": "auto-renewal",
            "description": "Renews for three years unless cancelled",
            "severity": "high",
            "excerpt": "shall automatically renew",
            "recommendation": "Calendar the notice date",
        }
    ],
    "keyTerms": {"autoRenewal": "Yes, 3 years", "cancellationNotice": "90 days"},
}

COMPARISON_JSON = {
    "summary": "The proposal lowers cost but adds risk.",
    "contracts": [
        {"name": "Acme (Current)", "strengths": ["known"], "weaknesses": ["price"], "keyTerms": [], "score": 6},
        {"name": "acme-2025.pdf (Proposed)", "strengths": ["price"], "weaknesses": ["liability"], "score": 7},
    ],
    "keyDifferences": [
        {"category": "pricing", "description": "10% cheaper", "impact": "medium", "favorsBuyer": True}
    ],
    "recommendation": "Negotiate changes",
    "concerns": ["Liability cap removed"],
}


def fake_client(content):
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


def test_extract_json_object_skips_prose_and_string_braces():
    text = 'Here is the analysis:\n{"summary": "uses {braces} and \\"quotes\\"", "n": {"a": 1}}\nThanks!'
    span = extract_json_object(text)
    assert json.loads(span) == {"summary": 'uses {braces} and "quotes"', "n": {"a": 1}}


def test_extract_json_object_starts_at_first_brace():
    # Brace-delimited prose ahead of the object is not skipped
    text = 'Checked {clause 4} first. {"summary": "ok"}'
    assert extract_json_object(text) == "{clause 4}"
    with pytest.raises(UnparsableResponse):
        parse_model_json(text, AssessmentAnalysis)


def test_extract_json_object_without_object():
    assert extract_json_object("no json here") is None
    assert extract_json_object('{"unterminated": 1') is None
    assert extract_json_object("") is None


def test_parse_model_json_accepts_camel_case_keys():
    analysis = parse_model_json(json.dumps(ASSESSMENT_JSON), AssessmentAnalysis)
    assert analysis.risk_level == "medium"
    assert analysis.key_terms["cancellationNotice"] == "90 days"
    assert analysis.findings[0].severity == "high"


def test_parse_model_json_rejects_wrong_shape():
    with pytest.raises(UnparsableResponse):
        parse_model_json('{"summary": "missing risk"}', AssessmentAnalysis)
    with pytest.raises(UnparsableResponse):
        parse_model_json('{"summary": "bad", "riskLevel": "extreme"}', AssessmentAnalysis)


@pytest.mark.asyncio
async def test_assess_text_with_default_criteria():
    client = fake_client("Sure!\n" + json.dumps(ASSESSMENT_JSON))
    service = ContractAIService(client=client, model="gpt-test")

    result = await service.assess("This agreement shall automatically renew.")

    assert isinstance(result, AssessmentResult)
    assert result.success
    assert result.assessment_criteria == DEFAULT_CRITERIA
    assert result.model_used == "gpt-test"
    assert result.analysis.summary.startswith("Three year")

    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-test"
    prompt = kwargs["messages"][1]["content"]
    assert "1. auto-renewal clauses and terms" in prompt
    assert "This agreement shall automatically renew." in prompt


@pytest.mark.asyncio
async def test_assess_uses_custom_criteria_and_builds_record():
    service = ContractAIService(client=fake_client(json.dumps(ASSESSMENT_JSON)), model="gpt-test")

    result = await service.assess("text", ["data retention"])

    assert result.assessment_criteria == ["data retention"]
    record = result.to_record(contract_id="c-1", file_name="acme.pdf")
    assert record["contract_id"] == "c-1"
    assert record["risk_level"] == "medium"
    assert record["findings"][0]["category"] == "auto-renewal"


@pytest.mark.asyncio
async def test_assess_empty_extraction_never_calls_model():
    client = fake_client(json.dumps(ASSESSMENT_JSON))
    service = ContractAIService(client=client, extractor=lambda data, file_type: "   \n")

    result = await service.assess(DocumentInput(data=b"%PDF-1.4", file_type="pdf"))

    assert result.success is False
    assert result.error == "extraction_failed"
    client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_assess_extractor_error_is_extraction_failure():
    def broken(data, file_type):
        raise RuntimeError("corrupt file")

    client = fake_client(json.dumps(ASSESSMENT_JSON))
    result = await ContractAIService(client=client, extractor=broken).assess(DocumentInput(data=b"x"))

    assert result.error == "extraction_failed"
    assert "corrupt file" in result.message
    client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_assess_unparsable_response():
    result = await ContractAIService(client=fake_client("I cannot help with that.")).assess("text")
    assert result.error == "unparsable_response"


@pytest.mark.asyncio
async def test_assess_transport_error():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=OpenAIError("connection reset"))

    result = await ContractAIService(client=client).assess("text")

    assert result.error == "transport_error"
    assert "connection reset" in result.message


@pytest.mark.asyncio
async def test_unconfigured_service_fails_with_transport_error(monkeypatch):
    monkeypatch.setattr("contract_tracker.config.OPENAI_API_KEY", None)
    service = ContractAIService()

    assert service.is_available() is False
    result = await service.assess("text")
    assert result.error == "transport_error"


def test_comparison_content_order_for_renewal():
    items = [
        ComparisonItem(name="Acme (Current)", kind="existing", document=b"%PDF-current"),
        ComparisonItem(name="Beta Services", kind="existing", metadata={"name": "Beta Services", "endDate": "2025-01-01"}),
    ]

    content = build_comparison_content(items, "favorable", "renewal", "Acme Corp")

    assert [block["type"] for block in content] == ["file", "text", "text"]
    assert content[0]["file"]["file_data"].startswith("data:application/pdf;base64,")
    assert "Beta Services (existing)" in content[1]["text"]
    assert '"endDate": "2025-01-01"' in content[1]["text"]
    prompt = content[2]["text"]
    assert "Should Acme Corp accept the renewal" in prompt
    assert "Contract 1: Acme (Current)\n[Full document provided for analysis]" in prompt
    assert "Contract 2: Beta Services\n[Metadata provided above]" in prompt


def test_comparison_content_puts_documents_before_metadata():
    items = [
        ComparisonItem(name="Acme (Current)", kind="existing", metadata={"name": "Acme", "autoRenewal": True}),
        ComparisonItem(name="acme-2025.pdf (Proposed)", kind="proposal", document=b"%PDF-proposal"),
    ]

    content = build_comparison_content(items, "favorable", "renewal", "Acme Corp")

    assert [block["type"] for block in content] == ["file", "text", "text"]
    assert content[0]["file"]["filename"] == "contract-2.pdf"
    assert content[1]["text"].startswith("Contract 1: Acme (Current) (existing)")
    assert "Contract 1: Acme (Current)\n[Metadata provided above]" in content[2]["text"]
    assert "Contract 2: acme-2025.pdf (Proposed)\n[Full document provided for analysis]" in content[2]["text"]


@pytest.mark.asyncio
async def test_compare_returns_parsed_comparison():
    client = fake_client(json.dumps(COMPARISON_JSON))
    service = ContractAIService(client=client, model="gpt-test", organization="Acme Corp")
    items = [
        ComparisonItem(name="Acme (Current)", document=b"%PDF-a"),
        ComparisonItem(name="acme-2025.pdf (Proposed)", kind="proposal", document=b"%PDF-b"),
    ]

    result = await service.compare(items, "pricing", "renewal")

    assert result.success
    assert result.mode == "renewal"
    assert result.comparison.contracts[1].score == 7
    assert result.comparison.key_differences[0].favors_buyer is True
    content = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
    assert [block["type"] for block in content] == ["file", "file", "text"]


@pytest.mark.asyncio
async def test_compare_rejects_unknown_focus():
    client = fake_client("{}")
    result = await ContractAIService(client=client).compare([ComparisonItem(name="a"), ComparisonItem(name="b")], "vibes", "existing")
    assert result.error == "validation_error"
    client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_query_contracts():
    answer = {
        "answer": "One contract renews this quarter.",
        "relevantContracts": [{"id": "c-1", "name": "Acme", "reason": "Renews in June"}],
        "observations": [],
    }
    client = fake_client(json.dumps(answer))

    result = await ContractAIService(client=client).query_contracts("What renews soon?", [{"id": "c-1", "name": "Acme"}])

    assert result.success
    assert result.result.relevant_contracts[0].name == "Acme"
    prompt = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
    assert "User question: What renews soon?" in prompt

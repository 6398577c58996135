from contract_tracker import storage


def test_documents_are_namespaced_by_contract(tmp_path):
    path = storage.save_document("c-1", "Acme MSA.pdf", b"%PDF-1.4", root=str(tmp_path))

    assert path == str(tmp_path / "contracts" / "c-1" / "original-Acme MSA.pdf")
    assert storage.read_document(path) == b"%PDF-1.4"
    assert storage.document_exists(path, root=str(tmp_path))


def test_filenames_cannot_escape_the_contract_folder(tmp_path):
    path = storage.save_document("c-1", "../../etc/passwd", b"x", root=str(tmp_path))
    assert path == str(tmp_path / "contracts" / "c-1" / "original-passwd")


def test_document_exists_rejects_paths_outside_uploads(tmp_path):
    outside = tmp_path / "elsewhere.pdf"
    outside.write_bytes(b"x")

    assert not storage.document_exists(str(outside), root=str(tmp_path / "uploads"))
    assert not storage.document_exists(None, root=str(tmp_path))
    assert not storage.document_exists(str(tmp_path / "missing.pdf"), root=str(tmp_path))

from backend.models.models import Attachment, AuditLog

PDF_BYTES = b"%PDF-1.4\n%test\n"


def _upload(client, correspondence_id, name="letter.pdf", content=PDF_BYTES, mime="application/pdf", **data):
    return client.post(
        f"/api/v1/attachments/{correspondence_id}",
        files={"file": (name, content, mime)},
        data=data,
    )


def test_upload_stores_file_and_row(db_session, storage, create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update"])
    correspondence = create_correspondence(clerk)
    client = api_client(clerk)

    response = _upload(client, correspondence.id, type="outgoing")
    assert response.status_code == 201
    body = response.json()
    assert body["original_name"] == "letter.pdf"
    assert body["file_path"].startswith("outgoing/")
    assert body["file_size"] == len(PDF_BYTES)
    assert body["uploaded_by"] == clerk.id
    assert (storage.root / body["file_path"]).read_bytes() == PDF_BYTES

    assert db_session.query(AuditLog).filter(AuditLog.resource == "attachment", AuditLog.action == "upload").count() == 1


def test_upload_defaults_to_incoming_and_accepts_query_direction(create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update"])
    correspondence = create_correspondence(clerk)
    client = api_client(clerk)

    assert _upload(client, correspondence.id).json()["file_path"].startswith("incoming/")

    response = client.post(
        f"/api/v1/attachments/{correspondence.id}?type=outgoing",
        files={"file": ("scan.png", b"\x89PNG", "image/png")},
    )
    assert response.json()["file_path"].startswith("outgoing/")


def test_upload_rejects_disallowed_mime_without_side_effects(db_session, storage, create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update"])
    correspondence = create_correspondence(clerk)

    response = _upload(api_client(clerk), correspondence.id, name="page.html", content=b"<html>", mime="text/html")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid file type. Only PDF, Word, JPG, and PNG files are allowed."}
    assert db_session.query(Attachment).count() == 0
    assert list((storage.root / "incoming").iterdir()) == []


def test_upload_rejects_unknown_direction(db_session, create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update"])
    correspondence = create_correspondence(clerk)

    response = _upload(api_client(clerk), correspondence.id, type="../../etc")
    assert response.status_code == 400
    assert db_session.query(Attachment).count() == 0


def test_upload_rejects_oversized_file(db_session, storage, create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update"])
    correspondence = create_correspondence(clerk)

    response = _upload(api_client(clerk), correspondence.id, content=b"x" * (storage.max_size + 10))
    assert response.status_code == 400
    assert db_session.query(Attachment).count() == 0


def test_upload_to_missing_correspondence_is_not_found(create_user, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update"])
    response = _upload(api_client(clerk), 9999)
    assert response.status_code == 404
    assert response.json() == {"error": "Correspondence not found"}


def test_upload_requires_update_permission(create_user, create_correspondence, api_client):
    viewer = create_user(role_name="viewer", permissions=["correspondence:read"])
    correspondence = create_correspondence(viewer)
    assert _upload(api_client(viewer), correspondence.id).status_code == 403


def test_download_sets_headers(storage, create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update", "correspondence:read"])
    correspondence = create_correspondence(clerk)
    client = api_client(clerk)
    attachment_id = _upload(client, correspondence.id, name="خطاب.pdf").json()["id"]

    response = client.get(f"/api/v1/attachments/{attachment_id}/download")
    assert response.status_code == 200
    assert response.content == PDF_BYTES
    assert response.headers["content-type"].startswith("application/pdf")
    assert "filename*=UTF-8''%D8%AE%D8%B7%D8%A7%D8%A8.pdf" in response.headers["content-disposition"]
    assert "frame-ancestors 'self'" in response.headers["content-security-policy"]


def test_download_missing_file_is_not_found(storage, create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update", "correspondence:read"])
    correspondence = create_correspondence(clerk)
    client = api_client(clerk)
    body = _upload(client, correspondence.id).json()
    (storage.root / body["file_path"]).unlink()

    response = client.get(f"/api/v1/attachments/{body['id']}/download")
    assert response.status_code == 404
    assert response.json() == {"error": "File not found"}


def test_download_refuses_tampered_path(db_session, create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:read"])
    correspondence = create_correspondence(clerk)
    attachment = Attachment(
        correspondence_id=correspondence.id,
        file_name="passwd",
        original_name="passwd",
        file_path="../../etc/passwd",
        file_size=10,
        mime_type="application/pdf",
        uploaded_by=clerk.id,
    )
    db_session.add(attachment)
    db_session.commit()

    response = api_client(clerk).get(f"/api/v1/attachments/{attachment.id}/download")
    assert response.status_code == 400


def test_delete_with_missing_file_still_succeeds(db_session, storage, create_user, create_correspondence, api_client):
    clerk = create_user(
        role_name="employee",
        permissions=["correspondence:update", "correspondence:delete"],
    )
    correspondence = create_correspondence(clerk)
    client = api_client(clerk)
    body = _upload(client, correspondence.id).json()
    (storage.root / body["file_path"]).unlink()

    response = client.delete(f"/api/v1/attachments/{body['id']}")
    assert response.status_code == 204
    assert db_session.query(Attachment).count() == 0


def test_delete_requires_delete_permission(create_user, create_correspondence, api_client):
    clerk = create_user(role_name="employee", permissions=["correspondence:update"])
    correspondence = create_correspondence(clerk)
    client = api_client(clerk)
    attachment_id = _upload(client, correspondence.id).json()["id"]

    assert client.delete(f"/api/v1/attachments/{attachment_id}").status_code == 403

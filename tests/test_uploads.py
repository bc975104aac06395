import os

from app.routers import files
from tests.helpers import auth_headers


def test_upload_stores_file_locally_and_serves_it(client, teacher):
    response = client.post(
        "/api/upload",
        params={"type": "material"},
        files={"file": ("notes.pdf", b"%PDF-1.4 lecture notes", "application/pdf")},
        headers=auth_headers(teacher),
    )

    assert response.status_code == 201, response.text
    stored = response.json()["file"]
    assert response.json()["file_path"].startswith("uploads/materials/")
    assert stored["original_name"] == "notes.pdf"
    assert stored["size"] == len(b"%PDF-1.4 lecture notes")
    assert os.path.exists(os.path.join(os.environ["UPLOAD_DIR"], "materials", stored["filename"]))

    served = client.get(f"/uploads/materials/{stored['filename']}")
    assert served.status_code == 200
    assert served.content == b"%PDF-1.4 lecture notes"


def test_profile_uploads_take_images_only(client, student):
    response = client.post(
        "/api/upload",
        params={"type": "profile"},
        files={"file": ("cv.pdf", b"data", "application/pdf")},
        headers=auth_headers(student),
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "UPL_3002"
    assert body["details"] == {"filename": "cv.pdf"}


def test_upload_too_large(client, student, monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_MB", "0")

    response = client.post(
        "/api/upload",
        params={"type": "assignment"},
        files={"file": ("essay.docx", b"x", "application/octet-stream")},
        headers=auth_headers(student),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "UPL_3001"


def test_multiple_upload_limits(client, teacher):
    too_many = [("files", (f"f{i}.txt", b"x", "text/plain")) for i in range(6)]
    one_bad = [("files", ("a.txt", b"x", "text/plain")), ("files", ("b.exe", b"x", "application/octet-stream"))]
    folder = os.path.join(os.environ["UPLOAD_DIR"], "materials")
    before = set(os.listdir(folder)) if os.path.isdir(folder) else set()

    rejected = client.post("/api/upload/multiple", files=too_many, headers=auth_headers(teacher))
    bad = client.post("/api/upload/multiple", files=one_bad, headers=auth_headers(teacher))

    assert rejected.status_code == 400
    assert rejected.json() == {"error": "At most 5 files per upload"}
    assert bad.status_code == 400
    after = set(os.listdir(folder)) if os.path.isdir(folder) else set()
    assert after == before


def test_multiple_upload(client, teacher):
    files = [("files", ("a.txt", b"one", "text/plain")), ("files", ("b.png", b"two", "image/png"))]

    response = client.post("/api/upload/multiple", files=files, headers=auth_headers(teacher))

    assert response.status_code == 201
    assert [f["original_name"] for f in response.json()["files"]] == ["a.txt", "b.png"]


def test_upload_requires_login(client):
    response = client.post("/api/upload", files={"file": ("a.txt", b"x", "text/plain")})
    assert response.status_code == 401


class FakeS3:
    def __init__(self):
        self.objects = []

    def put_object(self, **kwargs):
        self.objects.append(kwargs)
        return {"ETag": '"abc"'}


def test_upload_goes_to_s3_when_configured(client, teacher, monkeypatch):
    s3 = FakeS3()
    clients = []

    def fake_client(service, **kwargs):
        clients.append((service, kwargs))
        return s3

    monkeypatch.setenv("S3_BUCKET", "class-files")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIATEST")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setattr(files.boto3, "client", fake_client)

    response = client.post(
        "/api/upload",
        params={"type": "material"},
        files={"file": ("slides.pdf", b"%PDF slides", "application/pdf")},
        headers=auth_headers(teacher),
    )

    assert response.status_code == 201, response.text
    stored = response.json()["file"]
    key = f"materials/{stored['filename']}"
    assert response.json()["file_path"] == f"https://class-files.s3.eu-west-1.amazonaws.com/{key}"
    assert clients[0][0] == "s3"
    assert clients[0][1]["region_name"] == "eu-west-1"
    assert s3.objects == [{
        "Bucket": "class-files",
        "Key": key,
        "Body": b"%PDF slides",
        "ContentType": "application/pdf",
    }]
    assert not os.path.exists(os.path.join(os.environ["UPLOAD_DIR"], key))

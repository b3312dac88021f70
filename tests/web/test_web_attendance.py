"""Tests for attendance and import endpoints."""

import io
import zipfile

import pytest
from openpyxl import Workbook

HEADERS = {"X-User-Id": "user-1"}
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx_bytes(rows: list[list]) -> bytes:
    wb = Workbook()
    for row in rows:
        wb.active.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def enrolled(client, course_id, student_id):
    """Course with one enrolled student and two scheduled classes."""
    client.post(f"/api/courses/{course_id}/enrollments", json={"student_id": student_id})
    client.put(
        f"/api/courses/{course_id}/schedule", json={"dates": ["2024-03-01", "2024-03-08"]}
    )
    return course_id, student_id


class TestAttendance:
    """Tests for /api/courses/{id}/attendance."""

    def test_toggle_cycle(self, client, enrolled):
        """Four toggles walk the cycle back to unmarked."""
        course_id, student_id = enrolled
        url = f"/api/courses/{course_id}/attendance/toggle"
        body = {"student_id": student_id, "date": "2024-03-01"}

        statuses = [client.post(url, json=body).json()["status"] for _ in range(4)]

        assert statuses == ["present", "absent", "excused", None]
        assert client.get(f"/api/courses/{course_id}/attendance").json()["marks"] == []

    def test_sheet(self, client, enrolled):
        """Sheet lists marks and per-student percentage."""
        course_id, student_id = enrolled
        client.post(
            f"/api/courses/{course_id}/attendance/toggle",
            json={"student_id": student_id, "date": "2024-03-01"},
        )

        data = client.get(f"/api/courses/{course_id}/attendance").json()

        assert data["dates"] == ["2024-03-01", "2024-03-08"]
        assert data["marks"] == [
            {"student_id": student_id, "date": "2024-03-01", "status": "present"}
        ]
        [stats] = data["students"]
        assert stats["percentage"] == 50
        assert stats["below_threshold"] is True

    def test_missing_course(self, client):
        """Unknown course is 404."""
        response = client.post(
            "/api/courses/nope/attendance/toggle", json={"student_id": "s", "date": "2024-03-01"}
        )
        assert response.status_code == 404
        assert client.get("/api/courses/nope/attendance").status_code == 404


class TestImports:
    """Tests for POST /api/imports."""

    def test_import_workbook(self, client):
        """A valid sheet creates a term, a course and the students."""
        content = _xlsx_bytes([["Turma A"], ["Aluno", "Prova 1"], ["Maria", 8], ["João", 7]])

        response = client.post(
            "/api/imports",
            files={"file": ("turma.xlsx", content, XLSX_TYPE)},
            headers=HEADERS,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["count"] == 2
        assert data["course_name"] == "Turma A"
        assert data["progress"][-1] == "Concluído!"

        grid = client.get(f"/api/courses/{data['course_id']}/grid").json()
        assert sorted(e["student_name"] for e in grid["enrollments"]) == ["João", "Maria"]

    def test_requires_user(self, client):
        """Imports need an owner."""
        content = _xlsx_bytes([["Aluno"], ["Maria"]])
        response = client.post(
            "/api/imports", files={"file": ("turma.xlsx", content, XLSX_TYPE)}
        )
        assert response.status_code == 401

    def test_unsupported_format(self, client):
        """Only xlsx, xlsm, xls and csv uploads are accepted."""
        response = client.post(
            "/api/imports",
            files={"file": ("turma.pdf", b"%PDF", "application/pdf")},
            headers=HEADERS,
        )
        assert response.status_code == 400

    def test_no_header_is_unprocessable(self, client):
        """A sheet without a recognizable header is 422 and writes nothing."""
        content = _xlsx_bytes([["Data", "Valor"], ["2024", "10"]])

        response = client.post(
            "/api/imports",
            files={"file": ("turma.xlsx", content, XLSX_TYPE)},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert client.get("/api/terms").json()["count"] == 0

    def test_broken_worksheet_is_unprocessable(self, client):
        """A workbook whose sheet XML is cut short is 422, not a server error."""
        source = io.BytesIO(_xlsx_bytes([["Aluno", "Prova 1"], ["Maria", 8], ["Pedro", 6]]))
        broken = io.BytesIO()
        with zipfile.ZipFile(source) as src, zipfile.ZipFile(broken, "w") as dst:
            for item in src.infolist():
                data = src.read(item.filename)
                if item.filename == "xl/worksheets/sheet1.xml":
                    data = data[: len(data) // 2]
                dst.writestr(item, data)

        response = client.post(
            "/api/imports",
            files={"file": ("turma.xlsx", broken.getvalue(), XLSX_TYPE)},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert client.get("/api/terms").json()["count"] == 0

    def test_xls_extension_accepted(self, client):
        """.xls uploads reach the reader; an unreadable one is 422, not 400."""
        response = client.post(
            "/api/imports",
            files={"file": ("turma.xls", b"not an excel file", "application/vnd.ms-excel")},
            headers=HEADERS,
        )
        assert response.status_code == 422

    def test_csv_upload(self, client):
        """CSV uploads go through the same pipeline."""
        response = client.post(
            "/api/imports",
            files={"file": ("turma.csv", "Aluno;Prova 1\nMaria;8\n".encode(), "text/csv")},
            headers=HEADERS,
        )
        assert response.status_code == 201
        assert response.json()["count"] == 1

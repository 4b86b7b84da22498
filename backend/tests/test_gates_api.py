import json

from conftest import ADMIN_HEADERS, TECH, TECH_HEADERS

API = "/api/v1"


class TestGatesAPI:
    def _create_job(self, client, lead_tech_id=TECH):
        r = client.post(f"{API}/jobs", json={
            "title": "Water loss",
            "address": "12 Elm St",
            "lead_tech_id": lead_tech_id,
        }, headers=ADMIN_HEADERS)
        assert r.status_code == 201
        return r.json()["id"]

    def _gates(self, client, job_id):
        r = client.get(f"{API}/jobs/{job_id}", headers=TECH_HEADERS)
        return {g["stage_name"]: g for g in r.json()["gates"]}

    def _photo(self, name="photo.jpg", content=b"jpeg"):
        return ("photos", (name, content, "image/jpeg"))

    def test_get_gate_shows_requirements(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Photos"]
        r = client.get(f"{API}/gates/{gate['id']}", headers=TECH_HEADERS)
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "pending"
        assert "Minimum 3 photos per documented room" in data["requirements"]
        assert data["photo_count"] == 0

    def test_other_tech_cannot_see_gate(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Photos"]
        r = client.get(f"{API}/gates/{gate['id']}", headers={"X-User-Id": "tech-2"})
        assert r.status_code == 404

    def test_missing_identity(self, client):
        r = client.get(f"{API}/gates/whatever")
        assert r.status_code == 422

    def test_complete_arrival_with_photo(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Arrival"]
        r = client.post(
            f"{API}/gates/{gate['id']}/complete",
            files=[self._photo("arrival.jpg")],
            headers=TECH_HEADERS,
        )
        assert r.status_code == 200
        data = r.json()
        assert data["gate"]["status"] == "complete"
        assert data["gate"]["completed_by"] == TECH

        r = client.get(f"{API}/jobs/{job_id}/photos", headers=TECH_HEADERS)
        photos = r.json()
        assert len(photos) == 1
        assert photos[0]["metadata"]["type"] == "arrival"

        r = client.get(f"{API}/jobs/{job_id}/photos/{photos[0]['id']}/verify", headers=TECH_HEADERS)
        assert r.json()["verified"] is True

    def test_download_photo(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Photos"]
        r = client.post(
            f"{API}/gates/{gate['id']}/photos",
            files={"file": ("kitchen wide.jpg", b"wide-shot-bytes", "image/jpeg")},
            data={"room": "Kitchen", "photo_type": "Wide room shot"},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 201
        photo_id = r.json()["id"]

        r = client.get(f"{API}/jobs/{job_id}/photos/{photo_id}/download", headers=TECH_HEADERS)
        assert r.status_code == 200
        assert r.content == b"wide-shot-bytes"
        assert r.headers["content-type"] == "image/jpeg"

        r = client.get(f"{API}/jobs/{job_id}/photos/{photo_id}/download", headers={"X-User-Id": "tech-2"})
        assert r.status_code == 404

    def test_complete_arrival_without_photo(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Arrival"]
        r = client.post(f"{API}/gates/{gate['id']}/complete", data={}, headers=TECH_HEADERS)
        assert r.status_code == 422
        assert r.json()["errors"] == ["Arrival photo is required. Take a photo or log an exception."]

    def test_completion_by_unassigned_tech(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Intake"]
        r = client.post(
            f"{API}/gates/{gate['id']}/complete",
            data={"metadata": json.dumps({})},
            headers={"X-User-Id": "tech-2"},
        )
        assert r.status_code == 403
        assert "not assigned to you" in r.json()["detail"]

    def test_required_fields_checked_before_completion(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Departure"]
        r = client.post(
            f"{API}/gates/{gate['id']}/complete",
            data={"metadata": json.dumps({"equipmentStatus": "Removed"})},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 422
        assert r.json()["errors"] == ["Job status is required."]

    def test_departure_updates_job_status(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Departure"]
        r = client.post(
            f"{API}/gates/{gate['id']}/complete",
            data={"metadata": json.dumps({"equipmentStatus": "Removed", "jobStatus": "Complete"})},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 200
        r = client.get(f"{API}/jobs/{job_id}", headers=TECH_HEADERS)
        assert r.json()["status"] == "complete"
        assert r.json()["gates_resolved"] == 1

    def test_invalid_metadata_json(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Scope"]
        r = client.post(
            f"{API}/gates/{gate['id']}/complete",
            data={"metadata": "{not json"},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 400

    def test_invalid_metadata_shape(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Scope"]
        r = client.put(
            f"{API}/gates/{gate['id']}/metadata",
            json={"metadata": {"rooms": "Kitchen"}},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 422

    def test_photos_then_scope(self, client):
        job_id = self._create_job(client)
        gates = self._gates(client, job_id)
        photos_gate, scope = gates["Photos"], gates["Scope"]

        for photo_type in ("Wide room shot", "Close-up of damage", "Context/equipment photo"):
            r = client.post(
                f"{API}/gates/{photos_gate['id']}/photos",
                files={"file": ("k.jpg", photo_type.encode(), "image/jpeg")},
                data={"room": "Kitchen", "photo_type": photo_type},
                headers=TECH_HEADERS,
            )
            assert r.status_code == 201

        r = client.get(f"{API}/gates/{photos_gate['id']}/validation", headers=TECH_HEADERS)
        assert r.json()["is_valid"] is True

        r = client.put(
            f"{API}/gates/{scope['id']}/metadata",
            json={"metadata": {"rooms": ["Kitchen", "Attic"], "measurements": "Visual estimate only"}},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 200
        assert r.json()["status"] == "in_progress"

        r = client.post(f"{API}/gates/{scope['id']}/complete", data={}, headers=TECH_HEADERS)
        assert r.status_code == 422
        assert any("Room Attic listed in Scope has no photos" in e for e in r.json()["errors"])

        r = client.post(
            f"{API}/gates/{scope['id']}/complete",
            data={"metadata": json.dumps({"rooms": ["Kitchen"], "measurements": "12x14", "notes": "Cabinets"})},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 200
        assert r.json()["warnings"] == []

    def test_photos_completion_with_uploads(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Photos"]
        photo_meta = [
            {"room": "Bathroom", "type": "Wide shot"},
            {"room": "Bathroom", "type": "Close-up damage"},
            {"room": "Bathroom", "type": "Equipment"},
            {"room": "Bathroom", "type": "PPE", "isPpe": True},
        ]
        r = client.post(
            f"{API}/gates/{gate['id']}/complete",
            data={"photo_metadata": json.dumps(photo_meta)},
            files=[self._photo(f"p{i}.jpg", f"bytes-{i}".encode()) for i in range(4)],
            headers=TECH_HEADERS,
        )
        assert r.status_code == 200
        assert not any("PPE" in w for w in r.json()["warnings"])

        r = client.get(f"{API}/jobs/{job_id}/photos?gate_id={gate['id']}", headers=TECH_HEADERS)
        photos = r.json()
        assert len(photos) == 4
        assert sum(p["is_ppe"] for p in photos) == 1

    def test_exception_flow(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Photos"]

        r = client.post(f"{API}/gates/{gate['id']}/exception", json={"reason": "  "}, headers=TECH_HEADERS)
        assert r.status_code == 400

        r = client.post(
            f"{API}/gates/{gate['id']}/exception",
            json={"reason": "Camera broken"},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 200
        assert r.json()["status"] == "skipped"
        assert r.json()["requires_exception"] is True

        r = client.post(f"{API}/gates/{gate['id']}/complete", data={}, headers=TECH_HEADERS)
        assert r.status_code == 409
        assert r.json()["status"] == "skipped"

    def test_moisture_readings(self, client):
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Moisture/Equipment"]
        r = client.post(
            f"{API}/gates/{gate['id']}/readings",
            json={"room": "Kitchen", "material": "Drywall", "value": 28.0, "goal": 12.0},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 201
        readings = r.json()["metadata"]["readings"]
        assert readings[0]["room"] == "Kitchen"
        assert readings[0]["value"] == 28.0

        other = self._gates(client, job_id)["Scope"]
        r = client.post(
            f"{API}/gates/{other['id']}/readings",
            json={"room": "Kitchen", "value": 1},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 400

    def test_oversized_photo(self, client, monkeypatch):
        from fieldgates.config import settings
        monkeypatch.setattr(settings, "max_upload_bytes", 10)
        job_id = self._create_job(client)
        gate = self._gates(client, job_id)["Arrival"]
        r = client.post(
            f"{API}/gates/{gate['id']}/photos",
            files={"file": ("a.jpg", b"x" * 11, "image/jpeg")},
            headers=TECH_HEADERS,
        )
        assert r.status_code == 413

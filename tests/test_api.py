from tests.conftest import ADMIN_PASSWORD, bearer

ENROLLMENT = {
    "student_name": "Diego Alves",
    "student_email": "diego@example.com",
    "date_of_birth": "2010-07-21",
    "annual_tuition": "12000.00",
    "registration_fee": "1200.00",
    "due_day": 10,
    "start_date": "2025-02-15",
}


async def _login(client, email, password) -> dict:
    r = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


async def test_requests_without_token_are_rejected(client):
    r = await client.get("/api/charges/")
    assert r.status_code == 401


async def test_login_with_wrong_password(client, admin_user):
    r = await client.post("/api/auth/login", json={"email": admin_user.email, "password": "nope"})
    assert r.status_code == 401


async def test_enrollment_to_validated_student(client, admin_user):
    admin = await _login(client, admin_user.email, ADMIN_PASSWORD)
    assert admin["role"] == "admin"

    r = await client.post("/api/enrollments/", json=ENROLLMENT, headers=_auth(admin["access_token"]))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    assert body["charges_created"] == 13
    contract_id = body["contract_id"]
    enrollment_id = body["enrollment_id"]

    # Birth date as DDMMYYYY is the initial password.
    student = await _login(client, "diego@example.com", "21072010")
    assert student["role"] == "pending_student"

    r = await client.get("/api/charges/", headers=_auth(student["access_token"]))
    assert r.status_code == 403

    r = await client.put(f"/api/contracts/{contract_id}/validate", headers=_auth(admin["access_token"]))
    assert r.status_code == 409
    assert r.json()["code"] == "not_signed"

    r = await client.post(
        f"/api/contracts/{contract_id}/sign",
        files={"file": ("signed.pdf", b"%PDF-1.4 signed", "application/pdf")},
        headers={**_auth(student["access_token"]), "X-Forwarded-For": "198.51.100.4"},
    )
    assert r.status_code == 200, r.text
    signed = r.json()
    assert signed["role"] == "provisional_student"
    assert signed["data"]["status"] == "signed_under_review"
    assert signed["data"]["signature_ip"] == "198.51.100.4"
    provisional_token = signed["access_token"]

    r = await client.get("/api/charges/mine", headers=_auth(provisional_token))
    assert r.status_code == 200
    mine = r.json()
    assert len(mine["data"]) == 13
    assert all(c["enrollment_id"] == enrollment_id for c in mine["data"])
    assert mine["statement"]["open_count"] == 13

    r = await client.put(f"/api/contracts/{contract_id}/validate", headers=_auth(admin["access_token"]))
    assert r.status_code == 200
    assert r.json()["already_validated"] is False
    assert r.json()["account_promoted"] is True

    r = await client.put(f"/api/contracts/{contract_id}/validate", headers=_auth(admin["access_token"]))
    assert r.status_code == 200
    assert r.json()["already_validated"] is True

    r = await client.get("/api/auth/me", headers=_auth(provisional_token))
    assert r.json()["role"] == "student"


async def test_payment_flow(client, admin_user, enrollment, student_user):
    admin = await _login(client, admin_user.email, ADMIN_PASSWORD)
    headers = _auth(admin["access_token"])

    r = await client.post(
        "/api/charges/",
        json={
            "enrollment_id": str(enrollment.id),
            "base_amount": "1200.00",
            "due_date": "2025-02-25",
            "description": "Registration",
            "kind": "registration",
        },
        headers=headers,
    )
    assert r.status_code == 201, r.text
    charge_id = r.json()["id"]

    payment = {"paid_amount": "1200.00", "paid_date": "2025-02-20"}
    r = await client.put(f"/api/charges/{charge_id}/pay", json=payment, headers=headers)
    assert r.status_code == 200
    assert r.json()["status"] == "paid"
    assert r.json()["amount_due_at_payment"] == "1200.00"

    r = await client.put(f"/api/charges/{charge_id}/pay", json=payment, headers=headers)
    assert r.status_code == 409
    assert r.json()["code"] == "already_paid"

    r = await client.put(f"/api/charges/{charge_id}/status", json={"status": "cancelled"}, headers=headers)
    assert r.status_code == 409

    r = await client.get(f"/api/charges/{charge_id}", headers=headers)
    data = r.json()["data"]
    assert data["status"] == "paid"
    assert data["total_due"] == "1200.00"
    assert data["penalty_monthly"] == "0.00"

    r = await client.get("/api/charges/", params={"search": "souza", "status": "paid"}, headers=headers)
    assert [c["id"] for c in r.json()["data"]] == [charge_id]

    r = await client.delete(f"/api/charges/{charge_id}", headers=headers)
    assert r.status_code == 200
    r = await client.get(f"/api/charges/{charge_id}", headers=headers)
    assert r.status_code == 404


async def test_unknown_ids_are_not_found(client, admin_user):
    headers = bearer(admin_user)

    r = await client.get("/api/charges/not-an-id", headers=headers)
    assert r.status_code == 404
    assert r.json()["success"] is False

    r = await client.put("/api/contracts/65f000000000000000000000/validate", headers=headers)
    assert r.status_code == 404


async def test_student_cannot_read_other_enrollments(client, enrollment, student_user, admin_user):
    r = await client.post(
        "/api/contracts/",
        json={"enrollment_id": str(enrollment.id), "document_path": "storage/contracts/x.pdf"},
        headers=bearer(admin_user),
    )
    assert r.status_code == 201
    contract_id = r.json()["data"]["id"]

    r = await client.get(
        "/api/contracts/", params={"enrollment_id": "65f000000000000000000000"}, headers=bearer(student_user)
    )
    assert r.status_code == 403

    r = await client.get(f"/api/contracts/{contract_id}", headers=bearer(student_user))
    assert r.status_code == 200

    r = await client.put(f"/api/contracts/{contract_id}/validate", headers=bearer(student_user))
    assert r.status_code == 403


async def test_bad_payload_is_rejected(client, admin_user):
    r = await client.post(
        "/api/enrollments/",
        json={**ENROLLMENT, "registration_fee": "12000.00"},
        headers=bearer(admin_user),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"

    r = await client.post("/api/enrollments/", json={**ENROLLMENT, "due_day": 40}, headers=bearer(admin_user))
    assert r.status_code == 422

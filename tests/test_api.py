from decimal import Decimal

from factories import auth, student

API = "/api/finance"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requests_need_a_token(client):
    response = client.get(f"{API}/student-fees")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized", "detail": "Not authenticated", "context": {}}


def test_bad_token_rejected(client):
    response = client.get(f"{API}/student-fees", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_catalog_and_obligation_through_the_api(client, accountant):
    response = client.post(f"{API}/fee-types", json={"name": "Library Fee", "category": "library"},
                           headers=accountant)
    assert response.status_code == 201
    fee_type_id = response.json()["id"]

    response = client.post(f"{API}/fee-structures", headers=accountant, json={
        "fee_type_id": fee_type_id,
        "academic_year": "2025-26",
        "applicable_classes": ["5", " "],
        "amount": "1200.00",
        "due_day": 5,
    })
    assert response.status_code == 201
    structure = response.json()
    assert structure["applicable_classes"] == ["5"]

    response = client.post(f"{API}/student-fees", headers=accountant, json={
        "fee_structure_id": structure["id"],
        "period_start": "2025-06-01",
        "student": {"student_id": "S1", "name": "Asha Rao", "class_name": "5"},
    })
    assert response.status_code == 201
    fee = response.json()
    assert fee["status"] == "overdue"
    assert fee["due_date"] == "2025-06-05"
    assert Decimal(fee["total_amount"]) == Decimal("1200.00")

    response = client.post(f"{API}/student-fees", headers=accountant, json={
        "fee_structure_id": structure["id"],
        "period_start": "2025-06-01",
        "student": {"student_id": "S1", "name": "Asha Rao", "class_name": "5"},
    })
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidState"


def test_collect_and_fetch_receipt(client, accountant, tuition, make_fee):
    fee = make_fee(tuition)
    response = client.post(f"{API}/payments/collect", headers=accountant, json={
        "lines": [{"student_fee_id": fee.id, "amount": "5000.00"}],
        "payment_mode": "cash",
    })
    assert response.status_code == 201
    body = response.json()
    receipt = body["receipt"]
    assert receipt["receipt_number"] == "RCP000001"
    assert receipt["generated_by"] == "Meera Accountant"
    assert Decimal(receipt["total_amount"]) == Decimal("5000.00")
    assert len(body["payments"]) == 1

    response = client.get(f"{API}/receipts/RCP000001", headers=accountant)
    assert response.status_code == 200
    assert [line["line_no"] for line in response.json()["payments"]] == [1]

    response = client.get(f"{API}/student-fees/{fee.id}", headers=accountant)
    assert response.json()["status"] == "paid"

    response = client.get(f"{API}/ledger", headers=accountant)
    assert Decimal(response.json()["balance"]) == Decimal("5000.00")


def test_overpayment_error_shape(client, accountant, tuition, make_fee):
    fee = make_fee(tuition)
    response = client.post(f"{API}/payments/collect", headers=accountant, json={
        "lines": [{"student_fee_id": fee.id, "amount": 6000}],
        "payment_mode": "cash",
    })
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "ExceedsDue"
    assert body["context"]["line"] == 1
    assert body["context"]["student_fee_id"] == fee.id
    assert "exceeds remaining due" in body["detail"]


def test_malformed_request_is_a_validation_error(client, accountant):
    response = client.post(f"{API}/payments/collect", headers=accountant, json={
        "lines": [{"student_fee_id": "x", "amount": "10.00", "discount": 1}],
    })
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "ValidationError"
    assert "payment_mode" in body["context"]["fields"]
    assert "lines.0.discount" in body["context"]["fields"]


def test_unknown_receipt_is_not_found(client, accountant):
    response = client.get(f"{API}/receipts/RCP404404", headers=accountant)
    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


def test_parents_cannot_collect_or_read_the_ledger(client, tuition, make_fee):
    parent = auth(["PARENT"], student_ids=["S1"])
    fee = make_fee(tuition)

    response = client.post(f"{API}/payments/collect", headers=parent, json={
        "lines": [{"student_fee_id": fee.id, "amount": "100.00"}],
        "payment_mode": "cash",
    })
    assert response.status_code == 403
    assert response.json()["error"] == "PermissionDenied"
    assert client.get(f"{API}/ledger", headers=parent).status_code == 403


def test_parents_only_see_their_students(client, tuition, make_fee):
    own = make_fee(tuition)
    other = make_fee(tuition, student("S2", "Kiran Das"))
    parent = auth(["PARENT"], student_ids=["S1"])

    response = client.get(f"{API}/student-fees", headers=parent)
    assert response.status_code == 200
    assert [f["id"] for f in response.json()["items"]] == [own.id]
    assert response.json()["meta"]["total"] == 1

    assert client.get(f"{API}/student-fees/{own.id}", headers=parent).status_code == 200
    response = client.get(f"{API}/student-fees/{other.id}", headers=parent)
    assert response.status_code == 403
    assert response.json()["context"]["student_id"] == "S2"
    assert client.get(f"{API}/student-fees/student/S2", headers=parent).status_code == 403

    response = client.get(f"{API}/dues", headers=parent)
    assert [d["student_fee"]["student_id"] for d in response.json()["items"]] == ["S1"]


def test_status_filter_uses_projected_status(client, accountant, clock, tuition, make_fee):
    make_fee(tuition)
    clock.advance(days=-10)
    response = client.get(f"{API}/student-fees", params={"status": "pending"}, headers=accountant)
    assert response.json()["meta"]["total"] == 1
    clock.advance(days=10)
    response = client.get(f"{API}/student-fees", params={"status": "overdue"}, headers=accountant)
    assert response.json()["meta"]["total"] == 1


def test_concession_needs_an_adjudicator(client, accountant, principal, tuition, make_fee):
    fee = make_fee(tuition)
    response = client.post(f"{API}/concessions", headers=accountant, json={
        "student_id": "S1",
        "student_name": "Asha Rao",
        "fee_type_ids": [tuition.fee_type_id],
        "concession_type": "fixed_amount",
        "concession_value": "1000.00",
        "reason": "Family hardship",
    })
    assert response.status_code == 201
    request_id = response.json()["id"]
    assert response.json()["requested_by"] == "Meera Accountant"

    assert client.post(f"{API}/concessions/{request_id}/approve", headers=accountant).status_code == 403

    response = client.post(f"{API}/concessions/{request_id}/approve", headers=principal)
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    response = client.post(f"{API}/concessions/{request_id}/approve", headers=principal)
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidState"

    fee_json = client.get(f"{API}/student-fees/{fee.id}", headers=accountant).json()
    assert Decimal(fee_json["discount_amount"]) == Decimal("1000.00")


def test_reminder_run_uses_injected_channels(client, accountant, clock, channels, tuition, make_fee):
    make_fee(tuition)
    clock.advance(days=3)

    response = client.post(f"{API}/reminders/run", headers=accountant, json={})
    assert response.status_code == 200
    [log] = response.json()
    assert log["channel"] == "sms"
    assert log["status"] == "sent"
    assert len(channels["sms"].sent) == 1

    assert client.post(f"{API}/reminders/run", headers=accountant, json={}).json() == []

    response = client.get(f"{API}/reminders/logs", headers=accountant)
    assert response.json()["meta"]["total"] == 1


def test_parent_pays_online(client, accountant, gateway, tuition, make_fee):
    fee = make_fee(tuition)
    parent = auth(["PARENT"], student_ids=["S1"], user_id="parent-1")

    response = client.post(f"{API}/online-orders", headers=parent,
                           json={"student_id": "S2", "fee_ids": [fee.id]})
    assert response.status_code == 403

    response = client.post(f"{API}/online-orders", headers=parent,
                           json={"student_id": "S1", "fee_ids": [fee.id]})
    assert response.status_code == 201
    order_id = response.json()["order_id"]

    gateway.complete(order_id, "TXN-9")
    response = client.post(f"{API}/online-orders/{order_id}/confirm", headers=parent)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["receipt_number"] == "RCP000001"

    response = client.get(f"{API}/payments", headers=parent)
    assert [p["payment_mode"] for p in response.json()["items"]] == ["online"]


def test_expense_approval_and_payment(client, accountant, principal):
    response = client.post(f"{API}/expenses", headers=accountant, json={
        "category": "maintenance", "description": "Roof repair", "amount": "2500.00",
    })
    assert response.status_code == 201
    expense_id = response.json()["id"]

    assert client.post(f"{API}/expenses/{expense_id}/approve", headers=accountant, json={}).status_code == 403
    assert client.post(f"{API}/expenses/{expense_id}/approve", headers=principal, json={}).status_code == 200

    response = client.post(f"{API}/expenses/{expense_id}/pay", headers=accountant, json={"payment_ref": "NEFT-1"})
    assert response.status_code == 200
    assert response.json()["status"] == "paid"

    balance = client.get(f"{API}/ledger/balance", headers=principal).json()
    assert Decimal(balance["closing_balance"]) == Decimal("-2500.00")


def test_dashboard_stats(client, principal, tuition, make_fee):
    make_fee(tuition)
    response = client.get(f"{API}/stats", headers=principal)
    assert response.status_code == 200
    assert Decimal(response.json()["total_pending"]) == Decimal("5000.00")
    assert response.json()["overdue_students"] == 1

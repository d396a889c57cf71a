from datetime import date, datetime, timezone


def _at(year, month, day, hour=10):
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


def test_health_history_merges_sources_newest_first(
    api_client, auth_headers, patient, make_appointment, make_invoice, make_document
):
    make_appointment(patient, _at(2026, 3, 1), appointment_type="checkup", notes="Routine")
    make_invoice(patient, date(2026, 3, 5), invoice_number="INV-0100")
    make_document(patient, _at(2026, 3, 10), filename="passport.pdf", document_type="passport")

    res = api_client.get("/patients/me/health-history", headers=auth_headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert [event["type"] for event in body["events"]] == ["document", "invoice", "appointment"]

    document, invoice, appointment = body["events"]
    assert document["data"]["file_name"] == "passport.pdf"
    assert document["data"]["document_type"] == "passport"
    assert invoice["data"]["invoice_number"] == "INV-0100"
    assert invoice["data"]["payment_status"] == "pending"
    assert appointment["data"]["appointment_type"] == "checkup"
    assert appointment["data"]["notes"] == "Routine"
    assert body["filters"] == {"start_date": None, "end_date": None, "type": None, "limit": 50}


def test_health_history_truncates_to_limit(api_client, auth_headers, patient, make_appointment):
    for day in range(1, 8):
        make_appointment(patient, _at(2026, 4, day))

    res = api_client.get(
        "/patients/me/health-history", params={"limit": 3}, headers=auth_headers
    )
    assert res.status_code == 200, res.text
    events = res.json()["events"]
    assert len(events) == 3
    assert [event["timestamp"][:10] for event in events] == ["2026-04-07", "2026-04-06", "2026-04-05"]


def test_health_history_type_filter(
    api_client, auth_headers, patient, make_appointment, make_invoice, make_document
):
    make_appointment(patient, _at(2026, 3, 1))
    make_invoice(patient, date(2026, 3, 2))
    make_invoice(patient, date(2026, 3, 3))
    make_document(patient, _at(2026, 3, 4))

    res = api_client.get(
        "/patients/me/health-history", params={"type": "invoice"}, headers=auth_headers
    )
    assert res.status_code == 200, res.text
    events = res.json()["events"]
    assert len(events) == 2
    assert all(event["type"] == "invoice" for event in events)


def test_health_history_date_bounds_are_inclusive(
    api_client, auth_headers, patient, make_appointment, make_invoice
):
    make_appointment(patient, _at(2026, 5, 31, hour=23), appointment_type="before")
    make_appointment(patient, _at(2026, 6, 1, hour=0), appointment_type="first-day")
    make_appointment(patient, _at(2026, 6, 30, hour=23), appointment_type="last-day")
    make_appointment(patient, _at(2026, 7, 1, hour=0), appointment_type="after")
    make_invoice(patient, date(2026, 6, 30), invoice_number="INV-EDGE")

    res = api_client.get(
        "/patients/me/health-history",
        params={"start_date": "2026-06-01", "end_date": "2026-06-30"},
        headers=auth_headers,
    )
    assert res.status_code == 200, res.text
    body = res.json()
    labels = {
        event["data"].get("appointment_type") or event["data"].get("invoice_number")
        for event in body["events"]
    }
    assert labels == {"first-day", "last-day", "INV-EDGE"}
    assert body["filters"]["start_date"] == "2026-06-01"
    assert body["filters"]["end_date"] == "2026-06-30"


def test_health_history_rejects_inverted_range(api_client, auth_headers):
    res = api_client.get(
        "/patients/me/health-history",
        params={"start_date": "2026-06-30", "end_date": "2026-06-01"},
        headers=auth_headers,
    )
    assert res.status_code == 422
    assert res.json()["detail"] == "End date must be after start date"


def test_health_history_rejects_limit_over_max(api_client, auth_headers):
    res = api_client.get(
        "/patients/me/health-history", params={"limit": 101}, headers=auth_headers
    )
    assert res.status_code == 422


def test_health_history_only_shows_own_records(
    api_client, auth_headers, patient, other_patient, make_appointment
):
    make_appointment(patient, _at(2026, 2, 1), appointment_type="mine")
    make_appointment(other_patient, _at(2026, 2, 2), appointment_type="theirs")

    res = api_client.get("/patients/me/health-history", headers=auth_headers)
    assert res.status_code == 200, res.text
    types = [event["data"]["appointment_type"] for event in res.json()["events"]]
    assert types == ["mine"]


def test_health_history_requires_patient_role(api_client, staff_user, auth_headers_for):
    res = api_client.get("/patients/me/health-history", headers=auth_headers_for(staff_user))
    assert res.status_code == 403


def test_health_history_requires_token(api_client):
    res = api_client.get("/patients/me/health-history")
    assert res.status_code == 401
    assert res.json()["detail"] == "Missing bearer token"

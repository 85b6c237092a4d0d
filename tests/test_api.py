import pytest


@pytest.fixture
def api_user(client):
    response = client.post("/users", json={
        "name": "Alex Rivera",
        "email": "alex@dosewise.app",
        "timezone": "UTC",
    })
    assert response.status_code == 201
    return response.json()


def add_reference(client, user_id, reference_id):
    return client.post(f"/users/{user_id}/supplements/reference", json={"reference_id": reference_id})


# --- Users ---

def test_create_user_defaults(api_user):
    assert api_user["breakfast_time"] == "08:00"
    assert api_user["dinner_time"] == "19:00"
    assert api_user["notification_advance_minutes"] == 5
    assert api_user["goals"] == []


def test_create_user_validation(client, api_user):
    assert client.post("/users", json={"name": "B", "breakfast_time": "7am"}).status_code == 400
    assert client.post("/users", json={"name": "B", "timezone": "Mars/Olympus"}).status_code == 400
    assert client.post("/users", json={"name": "B", "email": "alex@dosewise.app"}).status_code == 409


def test_unknown_user_is_404(client):
    assert client.get("/users/missing").status_code == 404
    assert client.get("/users/missing/schedule").status_code == 404


def test_meal_time_change_moves_slots(client, api_user):
    user_id = api_user["id"]
    add_reference(client, user_id, "iron")

    response = client.patch(f"/users/{user_id}", json={"breakfast_time": "06:30"})

    assert response.status_code == 200
    assert response.json()["breakfast_time"] == "06:30"
    [slot] = client.get(f"/users/{user_id}/schedule").json()
    assert slot["time"] == "05:30"
    assert slot["display_time"] == "5:30 AM"


# --- Supplements ---

def test_add_reference_supplement(client, api_user):
    response = add_reference(client, api_user["id"], "vitamin_d")

    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Vitamin D"
    assert body["reference_id"] == "vitamin_d"
    assert body["dosage_unit"] == "IU"


def test_add_reference_errors(client, api_user):
    add_reference(client, api_user["id"], "iron")

    assert add_reference(client, api_user["id"], "iron").status_code == 409
    assert add_reference(client, api_user["id"], "unobtainium").status_code == 404


def test_manual_supplement_with_weekly_custom_time(client, api_user):
    user_id = api_user["id"]
    response = client.post(f"/users/{user_id}/supplements/manual", json={
        "name": "Vitamin B12 Injection",
        "category": "vitamin_water_soluble",
        "custom_time": "09:00",
        "custom_recurrence": {"kind": "weekly", "weekday": 3},
    })

    assert response.status_code == 201
    assert response.json()["custom_recurrence"]["weekday"] == 3
    [slot] = client.get(f"/users/{user_id}/schedule").json()
    assert slot["time"] == "09:00"
    assert slot["recurrence"]["kind"] == "weekly"
    assert [s["name"] for s in slot["supplements"]] == ["Vitamin B12 Injection"]


def test_manual_supplement_validation(client, api_user):
    url = f"/users/{api_user['id']}/supplements/manual"

    assert client.post(url, json={"name": "X", "custom_recurrence": {"kind": "weekly", "weekday": 9}}).status_code == 400
    assert client.post(url, json={"name": "X", "custom_time": "noon"}).status_code == 400
    assert client.post(url, json={"name": "X", "category": "candy"}).status_code == 422


def test_user_interactions(client, api_user):
    user_id = api_user["id"]
    for reference_id in ("iron", "calcium"):
        add_reference(client, user_id, reference_id)

    interactions = client.get(f"/users/{user_id}/supplements/interactions").json()

    assert [(i["supplement_a"], i["supplement_b"]) for i in interactions] == [("calcium", "iron")]


def test_delete_supplement_without_history(client, api_user):
    user_id = api_user["id"]
    supplement_id = add_reference(client, user_id, "iron").json()["id"]

    response = client.delete(f"/users/{user_id}/supplements/{supplement_id}")

    assert response.json() == {"id": supplement_id, "status": "deleted"}
    assert client.get(f"/users/{user_id}/supplements").json() == []
    assert client.get(f"/users/{user_id}/schedule").json() == []


# --- Intake ---

def test_mark_slot_taken_updates_today_and_streak(client, api_user):
    user_id = api_user["id"]
    add_reference(client, user_id, "iron")

    today = client.get(f"/users/{user_id}/intake/today").json()
    assert (today["completed"], today["total"]) == (0, 1)
    slot_id = today["slots"][0]["id"]

    response = client.post(f"/users/{user_id}/intake/slots/{slot_id}/taken")
    assert response.status_code == 200

    today = client.get(f"/users/{user_id}/intake/today").json()
    assert today["slots"][0]["status"] == "taken"
    assert today["slots"][0]["supplements"][0]["taken"] is True
    assert (today["completed"], today["total"]) == (1, 1)

    streak = client.get(f"/users/{user_id}/adherence/streak").json()
    assert streak["streak"] == 1
    assert streak["today_complete"] is True

    undo = client.post(f"/users/{user_id}/intake/slots/{slot_id}/undo").json()
    assert undo == {"slot_id": slot_id, "cleared": True}


def test_supplement_must_belong_to_slot(client, api_user):
    user_id = api_user["id"]
    add_reference(client, user_id, "iron")
    magnesium_id = add_reference(client, user_id, "magnesium").json()["id"]
    iron_slot = next(s for s in client.get(f"/users/{user_id}/schedule").json() if s["context"] == "empty_stomach")

    response = client.post(f"/users/{user_id}/intake/slots/{iron_slot['id']}/supplements/{magnesium_id}/taken")

    assert response.status_code == 400


def test_remind_me_later_validation(client, api_user):
    user_id = api_user["id"]
    add_reference(client, user_id, "iron")
    slot_id = client.get(f"/users/{user_id}/schedule").json()[0]["id"]
    url = f"/users/{user_id}/intake/slots/{slot_id}/remind"

    assert client.post(url, json={"time": "bad"}).status_code == 400
    assert client.post(url, json={"time": "00:00"}).status_code == 400
    assert client.post(f"/users/{user_id}/intake/slots/missing/remind", json={"time": "23:59"}).status_code == 404


# --- Adherence ---

def test_week_and_month_views(client, api_user):
    user_id = api_user["id"]
    add_reference(client, user_id, "iron")

    week = client.get(f"/users/{user_id}/adherence/week").json()
    assert len(week) == 7
    assert week[-1]["status"] == "today"

    month = client.get(f"/users/{user_id}/adherence/month").json()
    assert 28 <= len(month["days"]) <= 31
    assert client.get(f"/users/{user_id}/adherence/month", params={"month": 13}).status_code == 422


def test_summary(client, api_user):
    user_id = api_user["id"]
    add_reference(client, user_id, "iron")

    summary = client.get(f"/users/{user_id}/adherence/summary").json()

    assert summary["total"] == 1
    assert summary["streak"] == 0


def test_streak_counts_today_for_users_behind_utc(client):
    # UTC-12: for half of every UTC day the local calendar is a day behind
    user_id = client.post("/users", json={"name": "Sam Lee", "timezone": "Etc/GMT+12"}).json()["id"]
    add_reference(client, user_id, "iron")
    slot_id = client.get(f"/users/{user_id}/intake/today").json()["slots"][0]["id"]

    client.post(f"/users/{user_id}/intake/slots/{slot_id}/taken")

    streak = client.get(f"/users/{user_id}/adherence/streak").json()
    assert (streak["streak"], streak["today_complete"]) == (1, True)
    week = client.get(f"/users/{user_id}/adherence/week").json()
    assert week[-1]["status"] == "complete"
    month = client.get(f"/users/{user_id}/adherence/month").json()
    assert "complete" in {day["status"] for day in month["days"]}


# --- Reference ---

def test_reference_search_ranking(client):
    results = client.get("/reference/search", params={"q": "bone"}).json()

    assert [(r["supplement"]["id"], r["match_type"]) for r in results] == [
        ("vitamin_d", "keyword"),
        ("calcium", "goal"),
    ]


def test_reference_lookups(client):
    assert client.get("/reference/iron").json()["name"] == "Iron"
    assert client.get("/reference/unobtainium").status_code == 404
    assert len(client.get("/reference/iron/interactions").json()) == 2
    assert [s["supplement_b"] for s in client.get("/reference/iron/synergies").json()] == ["vitamin_c"]

    goals = {g["id"]: g for g in client.get("/reference/goals").json()}
    assert [s["id"] for s in goals["energy"]["supplements"]] == ["iron", "vitamin_b12"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}

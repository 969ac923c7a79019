import datetime

import models


def planting_payload(**overrides):
    payload = {
        "treeType": "Baobab",
        "species": "Adansonia digitata",
        "location": {
            "address": "12 Marina Road, Lagos",
            "latitude": 6.45,
            "longitude": 3.39,
            "city": "Lagos",
            "state": "Lagos",
            "country": "Nigeria",
        },
        "plantingDate": "2026-01-10T09:00:00",
        "images": [{"url": "https://images.example.com/baobab.jpg", "publicId": "greenpulse/baobab"}],
        "height": 120,
        "tags": [" Community ", "School"],
    }
    payload.update(overrides)
    return payload


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "OK"


def test_register_login_and_me(client):
    resp = client.post("/api/auth/register", json={
        "name": "Ada Green",
        "email": "Ada@Example.com",
        "password": "Secret123",
        "confirmPassword": "Secret123",
    })
    assert resp.status_code == 201
    assert resp.json()["treesPlanted"] == 0

    dup = client.post("/api/auth/register", json={
        "name": "Ada Again",
        "email": "ada@example.com",
        "password": "Secret123",
        "confirmPassword": "Secret123",
    })
    assert dup.status_code == 409

    token = client.post("/api/auth/token", data={"username": "ada@example.com", "password": "Secret123"})
    assert token.status_code == 200

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token.json()['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "ada@example.com"


def test_register_rejects_weak_or_mismatched_password(client):
    weak = client.post("/api/auth/register", json={
        "name": "Bob", "email": "bob@example.com", "password": "secret", "confirmPassword": "secret",
    })
    assert weak.status_code == 422
    mismatch = client.post("/api/auth/register", json={
        "name": "Bob", "email": "bob@example.com", "password": "Secret123", "confirmPassword": "Secret124",
    })
    assert mismatch.status_code == 422


def test_bad_login(client, user_factory):
    user_factory()
    resp = client.post("/api/auth/token", data={"username": "planter1@example.com", "password": "nope"})
    assert resp.status_code == 401


def test_create_planting(client, user_factory, headers):
    owner = user_factory()

    resp = client.post("/api/trees", json=planting_payload(), headers=headers(owner))

    assert resp.status_code == 201
    body = resp.json()
    assert body["treeType"] == "Baobab"
    assert body["isVerified"] is False
    assert body["location"]["coordinates"] == {"latitude": 6.45, "longitude": 3.39}
    assert body["images"][0]["publicId"] == "greenpulse/baobab"
    assert body["tags"] == ["community", "school"]
    assert body["plantedBy"]["id"] == owner.id


def test_create_requires_auth(client):
    assert client.post("/api/trees", json=planting_payload()).status_code == 401


def test_create_requires_an_image(client, user_factory, headers):
    resp = client.post("/api/trees", json=planting_payload(images=[]), headers=headers(user_factory()))
    assert resp.status_code == 400
    assert resp.json()["field"] == "images"


def test_create_rejects_future_planting_date(client, user_factory, headers):
    tomorrow = (models.utcnow() + datetime.timedelta(days=1)).isoformat()
    resp = client.post("/api/trees", json=planting_payload(plantingDate=tomorrow), headers=headers(user_factory()))
    assert resp.status_code == 400
    assert resp.json()["field"] == "plantingDate"


def test_create_rejects_negative_height(client, user_factory, headers):
    resp = client.post("/api/trees", json=planting_payload(height=-3), headers=headers(user_factory()))
    assert resp.status_code == 422


def test_only_owner_may_update_or_delete(client, user_factory, planting_factory, headers):
    owner, stranger = user_factory(), user_factory()
    planting = planting_factory(owner)

    update = client.put(f"/api/trees/{planting.id}", json={"description": "mine now"}, headers=headers(stranger))
    assert update.status_code == 403
    assert update.json()["code"] == "OWNERSHIP_REQUIRED"
    assert client.delete(f"/api/trees/{planting.id}", headers=headers(stranger)).status_code == 403

    ok = client.put(f"/api/trees/{planting.id}", json={"description": "Watered weekly"}, headers=headers(owner))
    assert ok.status_code == 200
    assert ok.json()["description"] == "Watered weekly"


def test_soft_delete_hides_planting_everywhere(client, db, user_factory, planting_factory, headers):
    owner = user_factory()
    verifier = user_factory(role="verifier")
    keep = planting_factory(owner, latitude=6.4, longitude=3.4)
    gone = planting_factory(owner, latitude=6.4, longitude=3.4)
    for planting in (keep, gone):
        assert client.post(f"/api/trees/{planting.id}/verify", headers=headers(verifier)).status_code == 200

    resp = client.delete(f"/api/trees/{gone.id}", headers=headers(owner))
    assert resp.status_code == 200

    assert client.get(f"/api/trees/{gone.id}").status_code == 404
    assert [t["id"] for t in client.get("/api/trees").json()["trees"]] == [keep.id]
    assert client.get("/api/map/trees", params={"zoom": 15}).json()["total"] == 1
    board = client.get("/api/leaderboard").json()
    assert board["entries"][0]["treeCount"] == 1
    assert board["entries"][0]["totalTrees"] == 1

    db.expire_all()
    assert db.get(models.User, owner.id).trees_planted == 1


def test_verification_rules(client, db, user_factory, planting_factory, headers):
    owner = user_factory()
    planter = user_factory()
    verifier = user_factory(role="verifier")
    planting = planting_factory(owner)
    own = planting_factory(verifier)

    assert client.post(f"/api/trees/{planting.id}/verify", headers=headers(planter)).status_code == 403
    assert client.post(f"/api/trees/{own.id}/verify", headers=headers(verifier)).status_code == 403

    resp = client.post(f"/api/trees/{planting.id}/verify", headers=headers(verifier))
    assert resp.status_code == 200
    assert resp.json()["isVerified"] is True
    assert resp.json()["verifiedBy"] == verifier.id

    again = client.post(f"/api/trees/{planting.id}/verify", headers=headers(verifier))
    assert again.status_code == 400

    db.expire_all()
    assert db.get(models.User, owner.id).trees_planted == 1


def test_like_toggles(client, user_factory, planting_factory, headers):
    owner, fan = user_factory(), user_factory()
    planting = planting_factory(owner)

    first = client.post(f"/api/trees/{planting.id}/like", headers=headers(fan)).json()
    assert first["isLiked"] is True
    assert first["likeCount"] == 1

    detail = client.get(f"/api/trees/{planting.id}", headers=headers(fan)).json()
    assert detail["isLikedByUser"] is True

    second = client.post(f"/api/trees/{planting.id}/like", headers=headers(fan)).json()
    assert second["isLiked"] is False
    assert second["likeCount"] == 0


def test_comments(client, user_factory, planting_factory, headers):
    owner, friend = user_factory(), user_factory(name="Friend")
    planting = planting_factory(owner)

    resp = client.post(f"/api/trees/{planting.id}/comment", json={"text": "  Lovely tree!  "}, headers=headers(friend))
    assert resp.status_code == 201
    comments = resp.json()["comments"]
    assert comments[0]["text"] == "Lovely tree!"
    assert comments[0]["user"]["name"] == "Friend"

    blank = client.post(f"/api/trees/{planting.id}/comment", json={"text": "   "}, headers=headers(friend))
    assert blank.status_code == 400
    too_long = client.post(f"/api/trees/{planting.id}/comment", json={"text": "x" * 301}, headers=headers(friend))
    assert too_long.status_code == 422


def test_list_filters_and_pagination(client, user_factory, planting_factory):
    owner = user_factory()
    for i in range(3):
        planting_factory(owner, tree_type="Oak")
    planting_factory(owner, tree_type="Mango", city="Accra")

    oaks = client.get("/api/trees", params={"treeType": "oak", "limit": 2}).json()
    assert len(oaks["trees"]) == 2
    assert oaks["pagination"] == {
        "currentPage": 1, "totalPages": 2, "hasNextPage": True, "hasPrevPage": False, "totalTrees": 3,
    }
    accra = client.get("/api/trees", params={"city": "accra"}).json()
    assert [t["treeType"] for t in accra["trees"]] == ["Mango"]

    assert client.get("/api/trees", params={"sortBy": "height"}).status_code == 400
    assert client.get("/api/trees", params={"page": "two"}).status_code == 400


def test_user_profile(client, db, user_factory, planting_factory):
    leader, runner_up = user_factory(), user_factory()
    leader.trees_planted = 5
    db.commit()
    planting_factory(runner_up, is_verified=True)
    planting_factory(runner_up)

    profile = client.get(f"/api/users/{runner_up.id}").json()

    assert profile["user"]["rank"] == 2
    assert profile["user"]["stats"] == {"totalTrees": 2, "verifiedTrees": 1, "recentTrees": 2}
    assert len(profile["trees"]) == 2
    assert client.get("/api/users/9999").status_code == 404
    assert client.get(f"/api/users/{runner_up.id}/trees").json()["pagination"]["totalTrees"] == 2


def test_leaderboard_endpoint(client, user_factory, planting_factory, headers):
    ada, kofi, newbie = user_factory(name="Ada"), user_factory(name="Kofi"), user_factory(name="Newbie")
    for _ in range(3):
        planting_factory(ada, is_verified=True, city="London")
    planting_factory(kofi, is_verified=True, city="Accra", country="Ghana")
    planting_factory(kofi, is_verified=False)

    resp = client.get("/api/leaderboard", params={"limit": 1}, headers=headers(kofi))
    assert resp.status_code == 200
    body = resp.json()
    assert [e["name"] for e in body["entries"]] == ["Ada"]
    assert body["currentUserRank"] == {"rank": 2, "treeCount": 1}
    assert [e["name"] for e in body["topThree"]] == ["Ada", "Kofi"]
    assert body["pagination"]["totalUsers"] == 2
    assert body["filters"] == {"timeframe": "all", "location": None}

    ghana = client.get("/api/leaderboard", params={"location": "ghana"}, headers=headers(newbie)).json()
    assert [e["name"] for e in ghana["entries"]] == ["Kofi"]
    assert ghana["currentUserRank"] is None

    assert client.get("/api/leaderboard", params={"timeframe": "decade"}).status_code == 400


def test_map_endpoint(client, user_factory, planting_factory):
    owner = user_factory()
    planting_factory(owner, latitude=10.0, longitude=20.0)
    planting_factory(owner, latitude=10.049, longitude=20.0)
    planting_factory(owner, latitude=10.06, longitude=20.0)
    planting_factory(owner, latitude=40.0, longitude=20.0)

    clustered = client.get("/api/map/trees", params={"zoom": 5, "bounds": "11,21,9,19"}).json()
    assert clustered["clustered"] is True
    assert sorted(p["count"] for p in clustered["points"]) == [1, 2]

    clamped = client.get("/api/map/trees", params={"zoom": 0}).json()
    assert clamped["zoom"] == 1

    close = client.get("/api/map/trees", params={"zoom": 14}).json()
    assert close["clustered"] is False
    assert close["total"] == 4
    assert close["points"][0]["image"] is not None


def test_map_rejects_malformed_parameters(client):
    bad_bounds = client.get("/api/map/trees", params={"bounds": "1,2,3"})
    assert bad_bounds.status_code == 400
    assert bad_bounds.json()["code"] == "INVALID_PARAMETER"
    assert client.get("/api/map/trees", params={"zoom": "close"}).status_code == 400
    assert client.get("/api/map/trees", params={"dateFrom": "2026-13-01"}).status_code == 400
    assert client.get("/api/map/heatmap", params={"intensity": "max"}).status_code == 400
    assert client.get("/api/map/regions", params={"level": "planet"}).status_code == 400


def test_heatmap_and_regions_use_verified_only(client, user_factory, planting_factory):
    owner = user_factory()
    planting_factory(owner, is_verified=True, country="Ghana", latitude=5.6, longitude=-0.2)
    planting_factory(owner, is_verified=False, country="Togo", latitude=6.1, longitude=1.2)

    heat = client.get("/api/map/heatmap").json()
    assert heat["total"] == 1
    assert heat["heatmap"][0]["weight"] == 1

    regions = client.get("/api/map/regions").json()
    assert regions["level"] == "country"
    assert [r["region"] for r in regions["regions"]] == ["Ghana"]


def test_stats_endpoint(client, user_factory, planting_factory):
    owner = user_factory()
    user_factory(is_active=False)
    planting_factory(owner, is_verified=True, country="Kenya")
    planting_factory(owner, is_verified=False)
    planting_factory(owner, is_verified=True, is_active=False)

    body = client.get("/api/leaderboard/stats").json()

    assert body["totals"]["totalUsers"] == 1
    assert body["totals"]["totalTrees"] == 2
    assert body["totals"]["verifiedTrees"] == 1
    assert body["totals"]["verificationRate"] == 50
    assert body["totals"]["activePlanters"] == 1
    assert body["topCountries"] == [{"country": "Kenya", "count": 1}]
    assert sum(m["count"] for m in body["monthlyGrowth"]) == 2


def test_create_trims_before_length_checks(client, user_factory, headers):
    owner = user_factory()

    blank_type = client.post("/api/trees", json=planting_payload(treeType="    "), headers=headers(owner))
    assert blank_type.status_code == 422

    location = dict(planting_payload()["location"], address="       ")
    blank_address = client.post("/api/trees", json=planting_payload(location=location), headers=headers(owner))
    assert blank_address.status_code == 422

    padded = client.post("/api/trees", json=planting_payload(treeType="  Fig  "), headers=headers(owner))
    assert padded.status_code == 201
    assert padded.json()["treeType"] == "Fig"


def test_update_rejects_blank_tree_type(client, user_factory, planting_factory, headers):
    owner = user_factory()
    planting = planting_factory(owner)

    resp = client.put(f"/api/trees/{planting.id}", json={"treeType": "   "}, headers=headers(owner))

    assert resp.status_code == 422
    assert client.get(f"/api/trees/{planting.id}").json()["treeType"] == "Oak"


def test_comment_length_counts_trimmed_text(client, user_factory, planting_factory, headers):
    owner = user_factory()
    planting = planting_factory(owner)

    resp = client.post(f"/api/trees/{planting.id}/comment", json={"text": "  " + "x" * 300 + "  "},
                       headers=headers(owner))

    assert resp.status_code == 201
    assert len(resp.json()["comments"][0]["text"]) == 300


def test_change_password(client, user_factory, headers):
    user = user_factory()

    wrong = client.post("/api/auth/change-password",
                        json={"currentPassword": "Wrong123", "newPassword": "Fresh456"}, headers=headers(user))
    assert wrong.status_code == 400
    assert wrong.json()["field"] == "currentPassword"

    weak = client.post("/api/auth/change-password",
                       json={"currentPassword": "Secret123", "newPassword": "fresh456"}, headers=headers(user))
    assert weak.status_code == 422

    ok = client.post("/api/auth/change-password",
                     json={"currentPassword": "Secret123", "newPassword": "Fresh456"}, headers=headers(user))
    assert ok.status_code == 200

    old = client.post("/api/auth/token", data={"username": "planter1@example.com", "password": "Secret123"})
    assert old.status_code == 401
    new = client.post("/api/auth/token", data={"username": "planter1@example.com", "password": "Fresh456"})
    assert new.status_code == 200


def test_change_password_requires_auth(client):
    resp = client.post("/api/auth/change-password", json={"currentPassword": "Secret123", "newPassword": "Fresh456"})
    assert resp.status_code == 401


def test_leaderboard_timeframes(client, user_factory, planting_factory):
    today = models.utcnow()
    fresh, middle, old = user_factory(name="Fresh"), user_factory(name="Middle"), user_factory(name="Old")
    planting_factory(fresh, is_verified=True, created_at=today - datetime.timedelta(hours=1))
    planting_factory(middle, is_verified=True, created_at=today - datetime.timedelta(days=8))
    planting_factory(old, is_verified=True, created_at=today - datetime.timedelta(days=40))

    def names(timeframe):
        body = client.get("/api/leaderboard", params={"timeframe": timeframe}).json()
        assert body["filters"]["timeframe"] == timeframe
        return sorted(e["name"] for e in body["entries"])

    assert names("all") == ["Fresh", "Middle", "Old"]
    assert names("week") == ["Fresh"]

    month_start = today.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    in_month = today - datetime.timedelta(days=8) >= month_start
    assert names("month") == (["Fresh", "Middle"] if in_month else ["Fresh"])


def test_leaderboard_location_is_literal(client, user_factory, planting_factory):
    planting_factory(user_factory(), is_verified=True)

    for term in ("%", "_"):
        body = client.get("/api/leaderboard", params={"location": term}).json()
        assert body["entries"] == []


def test_map_date_range_uses_planting_date(client, user_factory, planting_factory):
    owner = user_factory()
    planting_factory(owner, planting_date=datetime.datetime(2026, 1, 10))
    march = planting_factory(owner, planting_date=datetime.datetime(2026, 3, 5, 18, 0))
    planting_factory(owner, planting_date=datetime.datetime(2026, 4, 2))

    body = client.get("/api/map/trees",
                      params={"zoom": 15, "dateFrom": "2026-02-01", "dateTo": "2026-03-05"}).json()

    assert body["total"] == 1
    assert body["points"][0]["id"] == march.id

    reversed_range = client.get("/api/map/trees", params={"dateFrom": "2026-03-05", "dateTo": "2026-02-01"})
    assert reversed_range.status_code == 400


def test_blank_planted_by_lists_everything(client, user_factory, planting_factory):
    owner = user_factory()
    planting_factory(owner)
    planting_factory(owner)

    resp = client.get("/api/trees", params={"plantedBy": ""})

    assert resp.status_code == 200
    assert resp.json()["pagination"]["totalTrees"] == 2

"""Integration tests for the FastAPI endpoints (main.py)."""

import pytest


@pytest.fixture()
def admin(make_user, auth_header):
    return auth_header(make_user("admin", role="admin"), role="admin")


@pytest.fixture()
def player(make_user, auth_header):
    return auth_header(make_user("player"))


def test_root(client):
    assert client.get("/").json() == {"message": "Game Store API running"}


class TestAuth:
    def test_register_then_login(self, client):
        response = client.post(
            "/auth/register",
            json={"username": "newbie", "email": "newbie@example.com", "password": "hunter22"},
        )
        assert response.status_code == 201

        response = client.post("/auth/login", json={"username": "newbie", "password": "hunter22"})
        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "user"

        orders = client.get(
            "/orders/loggeduser", headers={"Authorization": f"Bearer {body['token']}"}
        )
        assert orders.status_code == 200

    def test_register_duplicate_username(self, client, make_user):
        make_user("taken")
        response = client.post(
            "/auth/register",
            json={"username": "taken", "email": "other@example.com", "password": "hunter22"},
        )
        assert response.status_code == 409

    def test_login_with_wrong_password(self, client, make_user):
        make_user("player", password="secret123")
        response = client.post("/auth/login", json={"username": "player", "password": "wrong123"})
        assert response.status_code == 404

    def test_missing_token(self, client):
        response = client.get("/orders/loggeduser")
        assert response.status_code == 401
        assert response.json()["detail"] == "No token provided."

    def test_invalid_token(self, client):
        response = client.get("/orders/loggeduser", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_user_cannot_list_all_orders(self, client, player):
        assert client.get("/orders", headers=player).status_code == 403


class TestOrders:
    def test_place_and_list_own_orders(self, client, player, make_game):
        digital = make_game(name="Elder Realms", is_digital=True, keys=3)
        boxed = make_game(name="Turbo Drift", quantity=5)

        response = client.post(
            "/orders/loggeduser",
            json=[{"game_id": digital, "quantity": 2}, {"game_id": boxed, "quantity": 1}],
            headers=player,
        )
        assert response.status_code == 201
        assert response.json()["message"] == "Order was created successfully"

        listed = client.get("/orders/loggeduser", headers=player).json()
        assert len(listed) == 1
        lines = listed[0]["games"]
        assert [line["name"] for line in lines] == ["Elder Realms", "Elder Realms", "Turbo Drift"]
        assert lines[0]["key"] != lines[1]["key"]
        assert lines[2]["key"] is None

    def test_admin_lists_all_orders(self, client, admin, player, make_game):
        game_id = make_game(quantity=5)
        client.post("/orders/loggeduser", json=[{"game_id": game_id, "quantity": 1}], headers=player)
        client.post("/orders/loggeduser", json=[{"game_id": game_id, "quantity": 1}], headers=admin)

        response = client.get("/orders", headers=admin)
        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_not_enough_keys(self, client, player, make_game, order_counts):
        game_id = make_game(is_digital=True, keys=3)

        response = client.post(
            "/orders/loggeduser", json=[{"game_id": game_id, "quantity": 4}], headers=player
        )
        assert response.status_code == 400
        assert order_counts() == (0, 0)

    def test_not_enough_box_stock(self, client, player, make_game):
        game_id = make_game(quantity=5)

        response = client.post(
            "/orders/loggeduser", json=[{"game_id": game_id, "quantity": 10}], headers=player
        )
        assert response.status_code == 400

    def test_unknown_game(self, client, player):
        response = client.post(
            "/orders/loggeduser", json=[{"game_id": 42, "quantity": 1}], headers=player
        )
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "body",
        [[], [{"game_id": 1, "quantity": 0}], [{"game_id": 1}], {"game_id": 1, "quantity": 1}],
    )
    def test_invalid_body(self, client, player, body):
        response = client.post("/orders/loggeduser", json=body, headers=player)
        assert response.status_code == 400


class TestGames:
    def test_digital_quantity_counts_unused_keys(self, client, player, make_game):
        game_id = make_game(is_digital=True, keys=3)
        client.post("/orders/loggeduser", json=[{"game_id": game_id, "quantity": 1}], headers=player)

        listed = {g["id"]: g for g in client.get("/games").json()}
        assert listed[game_id]["quantity"] == 2

    def test_list_filters_by_name(self, client, make_game):
        make_game(name="Sky Colony")
        make_game(name="Turbo Drift")

        response = client.get("/games", params={"q": "colony"})
        assert [g["name"] for g in response.json()] == ["Sky Colony"]

    def test_search(self, client, make_game):
        digital = make_game(name="Elder Realms", is_digital=True)
        make_game(name="Turbo Drift")

        response = client.post("/games/search", json={"is_digital": [True]})
        assert [g["id"] for g in response.json()] == [digital]

    def test_create_requires_admin(self, client, player):
        response = client.post("/games", json={"name": "Nope"}, headers=player)
        assert response.status_code == 403

    def test_create_and_partially_update(self, client, admin):
        platform = client.post("/platforms", json={"name": "PC"}, headers=admin).json()["id"]
        category = client.post("/categories", json={"name": "RPG"}, headers=admin).json()["id"]
        created = client.post(
            "/games",
            json={
                "name": "Nova Quest",
                "price": 50.0,
                "quantity": 4,
                "description": "Space RPG",
                "release_date": "2021-03-11",
                "is_digital": False,
                "age_category": "12",
                "platform_id": platform,
                "categories_id": [category],
            },
            headers=admin,
        )
        assert created.status_code == 201
        game_id = created.json()["id"]

        response = client.patch(f"/games/{game_id}", json={"price": 45.0}, headers=admin)
        assert response.status_code == 200

        game = client.get("/games").json()[0]
        assert game["price"] == 45.0
        assert game["name"] == "Nova Quest"
        assert game["categories_id"] == [category]

    def test_update_unknown_game(self, client, admin):
        response = client.patch("/games/999", json={"price": 1.0}, headers=admin)
        assert response.status_code == 404

    def test_bought_game_cannot_be_deleted(self, client, admin, player, make_game):
        game_id = make_game(is_digital=True, keys=2)
        client.post("/orders/loggeduser", json=[{"game_id": game_id, "quantity": 1}], headers=player)

        response = client.delete(f"/games/{game_id}", headers=admin)
        assert response.status_code == 409
        assert len(client.get("/games").json()) == 1

    def test_delete_unsold_game(self, client, admin, make_game):
        game_id = make_game(is_digital=True, keys=2)

        assert client.delete(f"/games/{game_id}", headers=admin).status_code == 200
        assert client.get("/games").json() == []
        assert client.get("/keys", headers=admin).json() == []


class TestCatalogue:
    def test_duplicate_category(self, client, admin):
        client.post("/categories", json={"name": "RPG"}, headers=admin)
        response = client.post("/categories", json={"name": "RPG"}, headers=admin)
        assert response.status_code == 409

    def test_rename_and_delete_platform(self, client, admin):
        platform = client.post("/platforms", json={"name": "PC"}, headers=admin).json()["id"]

        assert client.put(f"/platforms/{platform}", json={"name": "Windows"}, headers=admin).status_code == 200
        assert client.get("/platforms").json() == [{"id": platform, "name": "Windows"}]
        assert client.delete(f"/platforms/{platform}", headers=admin).status_code == 200
        assert client.delete(f"/platforms/{platform}", headers=admin).status_code == 404


class TestKeys:
    def test_sold_key_cannot_be_deleted(self, client, admin, player, make_game):
        game_id = make_game(is_digital=True, keys=2)
        client.post("/orders/loggeduser", json=[{"game_id": game_id, "quantity": 1}], headers=player)
        keys = client.get("/keys", headers=admin).json()
        sold = next(k for k in keys if k["used"])
        unsold = next(k for k in keys if not k["used"])

        assert client.delete(f"/keys/{sold['id']}", headers=admin).status_code == 403
        assert client.delete(f"/keys/{unsold['id']}", headers=admin).status_code == 200

    def test_duplicate_key(self, client, admin, make_game):
        game_id = make_game(is_digital=True)
        client.post("/keys", json={"game_id": game_id, "gkey": "AAAA-BBBB"}, headers=admin)

        response = client.post("/keys", json={"game_id": game_id, "gkey": "AAAA-BBBB"}, headers=admin)
        assert response.status_code == 409


class TestUsers:
    def test_admin_cannot_delete_self(self, client, make_user, auth_header):
        admin_id = make_user("root", role="admin")

        response = client.delete(f"/users/{admin_id}", headers=auth_header(admin_id, role="admin"))
        assert response.status_code == 400

    def test_logged_user_updates_email(self, client, make_user, auth_header):
        user_id = make_user("player")
        headers = auth_header(user_id)

        response = client.patch("/users/loggeduser", json={"email": "new@example.com"}, headers=headers)
        assert response.status_code == 200

        admin = auth_header(make_user("root", role="admin"), role="admin")
        listed = {u["id"]: u for u in client.get("/users", headers=admin).json()}
        assert listed[user_id]["email"] == "new@example.com"
        assert listed[user_id]["username"] == "player"

import pytest

pytestmark = pytest.mark.django_db


def test_me_returns_profile(api_client, renter_user):
    api_client.force_authenticate(renter_user)

    resp = api_client.get("/api/users/me/")

    assert resp.status_code == 200
    assert resp.data["username"] == "renter"
    assert resp.data["can_list"] is False


def test_me_updates_contact_fields_only(api_client, renter_user):
    api_client.force_authenticate(renter_user)

    resp = api_client.patch("/api/users/me/", {"phone": "+15550001111", "can_list": True}, format="json")

    assert resp.status_code == 200
    renter_user.refresh_from_db()
    assert renter_user.phone == "+15550001111"
    assert renter_user.can_list is False


def test_token_pair_is_issued(api_client, renter_user):
    resp = api_client.post(
        "/api/users/token/",
        {"username": "renter", "password": "testpass"},
        format="json",
    )

    assert resp.status_code == 200
    assert "access" in resp.data and "refresh" in resp.data

"""
Unit tests for company, team and invitation routes.
"""

from unittest.mock import patch

import pytest

from catalog_pilot.config import settings


@pytest.fixture
def member_headers(token_for):
    return {"Authorization": f"Bearer {token_for('user-2', 'member@example.com')}"}


def invite(client, headers, email="member@example.com", role="member"):
    return client.post("/api/team/invitations", json={"email": email, "role": role}, headers=headers)


@pytest.fixture
def joined(client, auth_headers, member_headers):
    """user-2 joined user-1's company as admin."""
    token = invite(client, auth_headers, role="admin").json()["token"]
    response = client.post(f"/api/invitations/{token}/accept", headers=member_headers)
    assert response.status_code == 200
    return response.json()


class TestCompanyAPI:
    """Tests for /api/company."""

    def test_rename_company(self, client, auth_headers):
        response = client.patch("/api/company", json={"name": "  Acme Outfitters "}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Acme Outfitters"
        assert client.get("/api/company", headers=auth_headers).json()["name"] == "Acme Outfitters"

    def test_rename_requires_name(self, client, auth_headers):
        response = client.patch("/api/company", json={"name": ""}, headers=auth_headers)
        assert response.status_code == 422

    def test_member_cannot_rename(self, client, auth_headers, member_headers):
        token = invite(client, auth_headers).json()["token"]
        client.post(f"/api/invitations/{token}/accept", headers=member_headers)

        response = client.patch("/api/company", json={"name": "Mine"}, headers=member_headers)
        assert response.status_code == 403


class TestInvitations:
    """Tests for inviting and joining a company."""

    def test_create_invitation(self, client, auth_headers):
        response = invite(client, auth_headers, email="New.Person@Example.com")
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new.person@example.com"
        assert data["status"] == "pending"
        assert data["token"]
        assert data["invite_url"].endswith(f"/invitations/{data['token']}")

        listing = client.get("/api/team/invitations", headers=auth_headers).json()
        assert [i["id"] for i in listing] == [data["id"]]
        assert "token" not in listing[0]

    def test_invalid_role_rejected(self, client, auth_headers):
        response = invite(client, auth_headers, role="owner")
        assert response.status_code == 422

    def test_public_invitation_details(self, client, auth_headers):
        token = invite(client, auth_headers).json()["token"]
        response = client.get(f"/api/invitations/{token}")
        assert response.status_code == 200
        assert response.json()["company_name"] == "owner"
        assert response.json()["role"] == "member"

    def test_unknown_invitation(self, client):
        assert client.get("/api/invitations/nope").status_code == 404

    def test_accept_moves_user_into_company(self, client, auth_headers, member_headers, joined):
        owner_company = client.get("/api/company", headers=auth_headers).json()
        assert joined["company"]["id"] == owner_company["id"]
        assert joined["user"]["role"] == "admin"

        team = client.get("/api/team", headers=auth_headers).json()
        assert {m["id"] for m in team} == {"user-1", "user-2"}
        assert client.get("/api/company", headers=member_headers).json()["id"] == owner_company["id"]

    def test_invitation_is_single_use(self, client, auth_headers, member_headers):
        token = invite(client, auth_headers).json()["token"]
        assert client.post(f"/api/invitations/{token}/accept", headers=member_headers).status_code == 200
        assert client.post(f"/api/invitations/{token}/accept", headers=member_headers).status_code == 400

    def test_accept_requires_matching_email(self, client, auth_headers, token_for):
        token = invite(client, auth_headers).json()["token"]
        stranger = {"Authorization": f"Bearer {token_for('user-3', 'stranger@example.com')}"}
        response = client.post(f"/api/invitations/{token}/accept", headers=stranger)
        assert response.status_code == 400

    def test_expired_invitation(self, client, auth_headers, member_headers):
        with patch.object(settings, "invitation_ttl_days", -1):
            token = invite(client, auth_headers).json()["token"]

        assert client.get(f"/api/invitations/{token}").json()["status"] == "expired"
        response = client.post(f"/api/invitations/{token}/accept", headers=member_headers)
        assert response.status_code == 400

    def test_existing_member_cannot_be_invited(self, client, auth_headers, joined):
        response = invite(client, auth_headers)
        assert response.status_code == 400

    def test_plain_member_cannot_invite(self, client, auth_headers, member_headers):
        token = invite(client, auth_headers).json()["token"]
        client.post(f"/api/invitations/{token}/accept", headers=member_headers)

        response = invite(client, member_headers, email="another@example.com")
        assert response.status_code == 403


class TestTeamMembers:
    """Tests for removing team members."""

    def test_remove_member(self, client, auth_headers, member_headers, joined):
        response = client.delete("/api/team/user-2", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"status": "removed", "id": "user-2"}

        team = client.get("/api/team", headers=auth_headers).json()
        assert [m["id"] for m in team] == ["user-1"]
        assert client.get("/api/company", headers=member_headers).status_code == 403

    def test_removed_member_can_rejoin(self, client, auth_headers, member_headers, joined):
        client.delete("/api/team/user-2", headers=auth_headers)

        token = invite(client, auth_headers).json()["token"]
        response = client.post(f"/api/invitations/{token}/accept", headers=member_headers)
        assert response.status_code == 200
        assert client.get("/api/company", headers=member_headers).status_code == 200

    def test_cannot_remove_self(self, client, auth_headers):
        response = client.delete("/api/team/user-1", headers=auth_headers)
        assert response.status_code == 400

    def test_owner_cannot_be_removed(self, client, member_headers, joined):
        response = client.delete("/api/team/user-1", headers=member_headers)
        assert response.status_code == 400

    def test_remove_unknown_member(self, client, auth_headers):
        response = client.delete("/api/team/ghost", headers=auth_headers)
        assert response.status_code == 404

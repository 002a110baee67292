from sqlalchemy import select

from aula.models import InstitutionAdmin, Role
from conftest import auth, make_user


def test_superadmin_manages_institutions(client, world):
    headers = auth(world.superadmin)
    resp = client.post(
        "/api/institutions",
        headers=headers,
        json={"name": "CETPRO Juliaca", "code": "CJ01", "address": "Jr. Lima 123"},
    )
    assert resp.status_code == 200
    institution_id = resp.json()["data"]["id"]

    resp = client.put(f"/api/institutions/{institution_id}", headers=headers, json={"phone": "051-123456"})
    assert resp.status_code == 200
    assert resp.json()["data"]["phone"] == "051-123456"

    assert client.get(f"/api/institutions/{institution_id}", headers=headers).status_code == 200
    assert len(client.get("/api/institutions", headers=headers).json()["data"]) == 3


def test_institution_code_is_unique(client, world):
    resp = client.post("/api/institutions", headers=auth(world.superadmin), json={"name": "Copia", "code": "A"})
    assert resp.status_code == 409


def test_institution_update_rules(client, world):
    headers = auth(world.superadmin)
    assert client.put(f"/api/institutions/{world.a.institution.id}", headers=headers, json={}).status_code == 400
    assert client.put("/api/institutions/999999", headers=headers, json={"name": "X"}).status_code == 404


def test_admins_cannot_manage_institutions(client, world):
    assert client.get("/api/institutions", headers=auth(world.a.admin)).status_code == 403
    resp = client.post("/api/institutions", headers=auth(world.a.admin), json={"name": "Mía", "code": "MIA"})
    assert resp.status_code == 403


def test_assign_admin_flow(client, world, db):
    new_admin = make_user(db, "admin.nuevo@aula.test", Role.ADMIN)
    teacher = world.a.teacher_user
    db.commit()
    headers = auth(world.superadmin)

    unassigned = client.get("/api/institution-admins/unassigned", headers=headers).json()["data"]
    assert [u["id"] for u in unassigned] == [new_admin.id]

    payload = {"user_id": teacher.id, "institution_id": world.b.institution.id}
    assert client.post("/api/institution-admins/assign", headers=headers, json=payload).status_code == 400

    payload = {"user_id": new_admin.id, "institution_id": 999999}
    assert client.post("/api/institution-admins/assign", headers=headers, json=payload).status_code == 404

    payload = {"user_id": new_admin.id, "institution_id": world.b.institution.id}
    resp = client.post("/api/institution-admins/assign", headers=headers, json=payload)
    assert resp.status_code == 200
    assignment_id = resp.json()["data"]["id"]

    # one institution per admin
    payload = {"user_id": new_admin.id, "institution_id": world.a.institution.id}
    assert client.post("/api/institution-admins/assign", headers=headers, json=payload).status_code == 409

    me = client.get("/api/institution-admins/me", headers=auth(new_admin))
    assert me.json()["data"]["id"] == world.b.institution.id

    assert client.delete(f"/api/institution-admins/unassign/{assignment_id}", headers=headers).status_code == 200
    assert db.scalar(select(InstitutionAdmin).where(InstitutionAdmin.user_id == new_admin.id)) is None
    assert client.get("/api/institution-admins/me", headers=auth(new_admin)).status_code == 404


def test_assignments_list(client, world):
    resp = client.get("/api/institution-admins", headers=auth(world.superadmin))
    assert resp.status_code == 200
    pairs = {(a["user"]["id"], a["institution"]["id"]) for a in resp.json()["data"]}
    assert pairs == {
        (world.a.admin.id, world.a.institution.id),
        (world.b.admin.id, world.b.institution.id),
    }


def test_health_endpoints(client):
    assert client.get("/").json()["status"] == "running"
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert "X-Request-ID" in resp.headers


def test_error_bodies_share_the_envelope(client, world):
    forbidden = client.get("/api/institutions", headers=auth(world.a.admin))
    assert forbidden.status_code == 403
    assert forbidden.json()["success"] is False
    assert forbidden.json()["message"] == forbidden.json()["detail"]

    missing = client.get("/api/institutions/999999", headers=auth(world.superadmin))
    assert missing.status_code == 404
    assert missing.json()["success"] is False

    unauthenticated = client.get("/api/auth/me")
    assert unauthenticated.status_code == 401
    assert unauthenticated.json()["success"] is False
    assert unauthenticated.headers["WWW-Authenticate"] == "Bearer"

    assert client.get("/api/no-such-route").json()["success"] is False

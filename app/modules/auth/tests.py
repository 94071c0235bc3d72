"""
Tests para autenticación y autorización

- Modelo de acceso: niveles, roles globales y gestión de miembros
- Cadena de guards: pública, token, rol global, nivel por empresa
- Registro, login y /me
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from app.common.exceptions import Forbidden, Unauthenticated, ValidationError
from app.modules.auth.access import (
    AccessLevel, MembershipStatus, Role, can_manage_member, has_access_level, has_role, parse_access_level,
)
from app.modules.auth.guards import (
    AUTHENTICATED, PUBLIC, ROUTE_ACCESS, RouteAccess, level, run_guard_chain,
)
from app.modules.auth.utils import create_access_token
from conftest import API, PASSWORD, add_membership, make_user


def token_for(user) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role.value})


class TestAccessModel:
    def test_access_level_order(self):
        assert has_access_level(AccessLevel.OWNER, AccessLevel.ADMINISTRATOR)
        assert has_access_level(AccessLevel.SUPERVISOR, AccessLevel.SUPERVISOR)
        assert not has_access_level(AccessLevel.EMPLOYEE, AccessLevel.SUPERVISOR)

    def test_missing_requirement_or_level(self):
        assert has_access_level(None, None)
        assert has_access_level(AccessLevel.EMPLOYEE, None)
        assert not has_access_level(None, AccessLevel.EMPLOYEE)

    def test_roles(self):
        assert has_role(Role.USER, None)
        assert has_role(Role.ADMIN, [Role.DEVELOPER])
        assert has_role("DEVELOPER", [Role.DEVELOPER])
        assert not has_role(Role.USER, [Role.DEVELOPER])
        assert not has_role(None, [Role.USER])

    def test_member_management_requires_higher_level(self):
        assert can_manage_member(AccessLevel.OWNER, AccessLevel.ADMINISTRATOR)
        assert not can_manage_member(AccessLevel.ADMINISTRATOR, AccessLevel.ADMINISTRATOR)

    @pytest.mark.parametrize("value,expected", [
        (30, AccessLevel.AREA_MANAGER),
        ("20", AccessLevel.SUPERVISOR),
        ("owner", AccessLevel.OWNER),
        (AccessLevel.EMPLOYEE, AccessLevel.EMPLOYEE),
    ])
    def test_parse_access_level(self, value, expected):
        assert parse_access_level(value) == expected

    @pytest.mark.parametrize("value", [15, "jefe", "-1"])
    def test_parse_invalid_access_level(self, value):
        with pytest.raises(ValidationError):
            parse_access_level(value)

    def test_every_route_is_declared_once(self):
        assert all(isinstance(rule, RouteAccess) for rule in ROUTE_ACCESS.values())
        assert ROUTE_ACCESS["auth.login"].is_public
        assert ROUTE_ACCESS["companies.list_all"].admin_only


class TestGuardChain:
    def test_public_route_needs_no_token(self, db_session):
        context = run_guard_chain(PUBLIC, None, None, db_session)
        assert context.is_public
        assert context.user_id is None

    def test_missing_token(self, db_session):
        with pytest.raises(Unauthenticated):
            run_guard_chain(AUTHENTICATED, None, None, db_session)

    def test_garbage_token(self, db_session):
        with pytest.raises(Unauthenticated):
            run_guard_chain(AUTHENTICATED, "no-es-un-jwt", None, db_session)

    def test_expired_token(self, db_session, owner):
        token = create_access_token({"sub": str(owner.id)}, expires_delta=timedelta(minutes=-1))
        with pytest.raises(Unauthenticated):
            run_guard_chain(AUTHENTICATED, token, None, db_session)

    def test_unknown_or_inactive_user(self, db_session, owner):
        token = create_access_token({"sub": str(uuid4())})
        with pytest.raises(Unauthenticated):
            run_guard_chain(AUTHENTICATED, token, None, db_session)

        owner.is_active = False
        db_session.commit()
        with pytest.raises(Unauthenticated):
            run_guard_chain(AUTHENTICATED, token_for(owner), None, db_session)

    def test_role_checked_before_company(self, db_session, owner):
        route = RouteAccess(roles=(Role.DEVELOPER,), access_level=AccessLevel.EMPLOYEE)
        with pytest.raises(Forbidden) as exc:
            run_guard_chain(route, token_for(owner), str(uuid4()), db_session)
        assert exc.value.detail == "No tienes permisos para esta operación"

    def test_owner_passes_any_level(self, db_session, owner, company_id):
        context = run_guard_chain(level(AccessLevel.OWNER), token_for(owner), str(company_id), db_session)
        assert context.user_id == owner.id
        assert context.company_id == company_id
        assert context.access_level == AccessLevel.OWNER

    def test_insufficient_level(self, db_session, company_id):
        employee = make_user(db_session, "cajero@supermercado.com")
        add_membership(db_session, employee, company_id, AccessLevel.EMPLOYEE)

        context = run_guard_chain(level(AccessLevel.EMPLOYEE), token_for(employee), str(company_id), db_session)
        assert context.access_level == AccessLevel.EMPLOYEE

        with pytest.raises(Forbidden) as exc:
            run_guard_chain(level(AccessLevel.SUPERVISOR), token_for(employee), str(company_id), db_session)
        assert exc.value.detail == "Nivel de acceso insuficiente"

    def test_owner_route_rejects_area_manager(self, db_session, company_id):
        manager = make_user(db_session, "gerente@supermercado.com")
        add_membership(db_session, manager, company_id, AccessLevel.AREA_MANAGER)

        with pytest.raises(Forbidden):
            run_guard_chain(level(AccessLevel.OWNER), token_for(manager), str(company_id), db_session)

    def test_suspended_membership_is_not_membership(self, db_session, company_id):
        suspended = make_user(db_session, "suspendido@supermercado.com")
        add_membership(db_session, suspended, company_id, AccessLevel.ADMINISTRATOR, MembershipStatus.SUSPENDED)

        with pytest.raises(Forbidden) as exc:
            run_guard_chain(level(AccessLevel.EMPLOYEE), token_for(suspended), str(company_id), db_session)
        assert exc.value.detail == "No perteneces a esta empresa"

    def test_global_admin_bypasses_company_checks(self, db_session, company_id):
        admin = make_user(db_session, "admin@ally360.com", role=Role.ADMIN)
        context = run_guard_chain(level(AccessLevel.OWNER), token_for(admin), str(company_id), db_session)
        assert context.role == Role.ADMIN
        assert context.access_level is None

    def test_invalid_company_id(self, db_session, owner):
        with pytest.raises(ValidationError):
            run_guard_chain(level(AccessLevel.EMPLOYEE), token_for(owner), "no-es-uuid", db_session)


class TestAuthEndpoints:
    def test_register_and_login(self, client):
        payload = {
            "email": "nueva@tienda.com",
            "password": "ClaveSegura1",
            "first_name": "Laura",
            "last_name": "Gómez",
        }
        response = client.post(f"{API}/auth/register", json=payload)
        assert response.status_code == 201
        assert response.json()["role"] == "USER"
        assert "password" not in response.json()

        duplicate = client.post(f"{API}/auth/register", json=payload)
        assert duplicate.status_code == 409

        login = client.post(f"{API}/auth/login", json={"email": payload["email"], "password": payload["password"]})
        assert login.status_code == 200
        assert login.json()["token_type"] == "bearer"
        assert login.json()["companies"] == []

    def test_login_wrong_password(self, client, owner):
        response = client.post(f"{API}/auth/login", json={"email": owner.email, "password": "incorrecta"})
        assert response.status_code == 401
        assert response.json()["kind"] == "Unauthenticated"

    def test_login_lists_companies(self, client, owner, sample_company):
        response = client.post(f"{API}/auth/login", json={"email": owner.email, "password": PASSWORD})
        companies = response.json()["companies"]
        assert len(companies) == 1
        assert companies[0]["company_name"] == "Supermercado Central"
        assert companies[0]["access_level"] == AccessLevel.OWNER

    def test_me(self, client, owner_headers, sample_company):
        response = client.get(f"{API}/auth/me", headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "owner@supermercado.com"
        assert len(response.json()["companies"]) == 1

    def test_me_without_token(self, client):
        response = client.get(f"{API}/auth/me")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

"""Tests for RoleTemplateService — template CRUD and role assignment."""

import pytest

from access_governance_engine.adapters.memory import InMemoryGovernanceStore
from access_governance_engine.core.errors import NotFoundError, ValidationError
from access_governance_engine.core.models import ExpectedApp, RoleTemplateDefinition
from access_governance_engine.core.role_templates import RoleTemplateService
from tests.conftest import NOW, TENANT_ID, make_user


def _definition(name: str = "Backend Engineer", department: str | None = "Engineering") -> RoleTemplateDefinition:
    return RoleTemplateDefinition(
        name=name,
        department=department,
        level="individual_contributor",
        expected_apps=[
            ExpectedApp(app_id="github", app_name="GitHub", required=True),
            ExpectedApp(app_id="slack", app_name="Slack"),
        ],
    )


class TestRoleTemplateCrud:
    """Tests for create/get/list/update/delete."""

    @pytest.mark.asyncio()
    async def test_create_and_get(self, role_template_service: RoleTemplateService) -> None:
        created = await role_template_service.create_role_template(_definition(name="  Backend Engineer "), "admin")

        fetched = await role_template_service.get_role_template(created.id)
        assert fetched.name == "Backend Engineer"
        assert fetched.is_active is True
        assert fetched.user_count == 0
        assert fetched.created_by == "admin"
        assert fetched.created_at == NOW
        assert [a.app_id for a in fetched.expected_apps] == ["github", "slack"]

    @pytest.mark.asyncio()
    async def test_blank_name_is_rejected(self, role_template_service: RoleTemplateService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await role_template_service.create_role_template(_definition(name=" "), "admin")
        assert exc_info.value.field == "name"

    @pytest.mark.asyncio()
    async def test_duplicate_app_is_rejected(self, role_template_service: RoleTemplateService) -> None:
        definition = _definition()
        definition.expected_apps.append(ExpectedApp(app_id="github", app_name="GitHub", access_type="admin"))

        with pytest.raises(ValidationError) as exc_info:
            await role_template_service.create_role_template(definition, "admin")
        assert exc_info.value.field == "expected_apps"

    @pytest.mark.asyncio()
    async def test_list_filters_by_department(self, role_template_service: RoleTemplateService) -> None:
        await role_template_service.create_role_template(_definition(), "admin")
        await role_template_service.create_role_template(_definition("Account Executive", "Sales"), "admin")

        sales = await role_template_service.list_role_templates(department="Sales")

        assert [t.name for t in sales] == ["Account Executive"]
        assert len(await role_template_service.list_role_templates()) == 2

    @pytest.mark.asyncio()
    async def test_update_replaces_content(self, role_template_service: RoleTemplateService) -> None:
        created = await role_template_service.create_role_template(_definition(), "admin")
        replacement = RoleTemplateDefinition(name="Platform Engineer", department="Engineering")

        updated = await role_template_service.update_role_template(created.id, replacement)

        assert updated.name == "Platform Engineer"
        assert updated.expected_apps == []
        assert updated.created_by == "admin"

    @pytest.mark.asyncio()
    async def test_delete(self, role_template_service: RoleTemplateService) -> None:
        created = await role_template_service.create_role_template(_definition(), "admin")

        await role_template_service.delete_role_template(created.id)

        with pytest.raises(NotFoundError):
            await role_template_service.get_role_template(created.id)
        with pytest.raises(NotFoundError):
            await role_template_service.delete_role_template(created.id)

    @pytest.mark.asyncio()
    async def test_update_unknown_template(self, role_template_service: RoleTemplateService) -> None:
        with pytest.raises(NotFoundError):
            await role_template_service.update_role_template("missing", _definition())

    @pytest.mark.asyncio()
    async def test_templates_are_tenant_scoped(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
    ) -> None:
        created = await role_template_service.create_role_template(_definition(), "admin")
        other_tenant = RoleTemplateService(tenant_id="tenant-2", role_store=store, directory=store)

        with pytest.raises(NotFoundError):
            await other_tenant.get_role_template(created.id)
        assert await other_tenant.list_role_templates() == []

    def test_prebuilt_templates_are_valid_definitions(self) -> None:
        prebuilt = RoleTemplateService.get_prebuilt_templates()

        assert [t.name for t in prebuilt] == [
            "Software Engineer",
            "Sales Representative",
            "Marketing Manager",
            "Finance Analyst",
            "HR Manager",
        ]
        for definition in prebuilt:
            app_ids = [a.app_id for a in definition.expected_apps]
            assert len(app_ids) == len(set(app_ids))


class TestRoleAssignment:
    """Tests for assign_role_to_user."""

    @pytest.mark.asyncio()
    async def test_assignment_counts_popularity(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
    ) -> None:
        store.add_user(TENANT_ID, make_user("alice"))
        template = await role_template_service.create_role_template(_definition(), "admin")

        assignment = await role_template_service.assign_role_to_user("alice", template.id, "admin", "New hire")

        assert assignment.is_active is True
        assert assignment.assignment_reason == "New hire"
        assert assignment.assigned_at == NOW
        assert (await role_template_service.get_role_template(template.id)).user_count == 1

    @pytest.mark.asyncio()
    async def test_reassignment_deactivates_previous_role(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
    ) -> None:
        store.add_user(TENANT_ID, make_user("alice"))
        first = await role_template_service.create_role_template(_definition(), "admin")
        second = await role_template_service.create_role_template(_definition("Staff Engineer"), "admin")
        await role_template_service.assign_role_to_user("alice", first.id, "admin")

        await role_template_service.assign_role_to_user("alice", second.id, "admin")

        active = await store.list_role_assignments(TENANT_ID, user_id="alice", is_active=True)
        assert [a.role_template_id for a in active] == [second.id]
        assert (await role_template_service.get_role_template(first.id)).user_count == 0
        assert (await role_template_service.get_role_template(second.id)).user_count == 1
        assert len(await store.list_role_assignments(TENANT_ID, user_id="alice")) == 2

    @pytest.mark.asyncio()
    async def test_unknown_user_or_template(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
    ) -> None:
        store.add_user(TENANT_ID, make_user("alice"))
        template = await role_template_service.create_role_template(_definition(), "admin")

        with pytest.raises(NotFoundError):
            await role_template_service.assign_role_to_user("ghost", template.id, "admin")
        with pytest.raises(NotFoundError):
            await role_template_service.assign_role_to_user("alice", "missing", "admin")
        assert await store.list_role_assignments(TENANT_ID) == []

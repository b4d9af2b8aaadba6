"""Role template catalog and user role assignment."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from access_governance_engine.core.errors import NotFoundError, ValidationError
from access_governance_engine.core.interfaces import IDirectoryStore, IRoleTemplateStore
from access_governance_engine.core.models import (
    ExpectedApp,
    RoleAssignment,
    RoleTemplate,
    RoleTemplateDefinition,
)
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)


def _validate_definition(definition: RoleTemplateDefinition) -> None:
    if not definition.name or not definition.name.strip():
        raise ValidationError(message="Role template name is required", field="name")
    seen: set[str] = set()
    for expected in definition.expected_apps:
        if expected.app_id in seen:
            raise ValidationError(
                message=f"Application '{expected.app_id}' is listed more than once",
                field="expected_apps",
            )
        seen.add(expected.app_id)


class RoleTemplateService:
    """CRUD over role templates and the one-active-role-per-user assignment rule.

    Args:
        tenant_id: Owning tenant.
        role_store: Role template and assignment persistence.
        directory: User directory, used to check assignees exist.
        clock: Returns the current UTC time. Defaults to datetime.now(UTC).
    """

    def __init__(
        self,
        tenant_id: str,
        role_store: IRoleTemplateStore,
        directory: IDirectoryStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._role_store = role_store
        self._directory = directory
        self._clock = clock or (lambda: datetime.now(UTC))

    async def create_role_template(
        self,
        definition: RoleTemplateDefinition,
        created_by: str,
    ) -> RoleTemplate:
        """Create an active role template.

        Raises:
            ValidationError: If the name is blank or an app is listed twice.
        """
        _validate_definition(definition)
        now = self._clock()
        template = await self._role_store.create_role_template(
            RoleTemplate(
                tenant_id=self._tenant_id,
                name=definition.name.strip(),
                description=definition.description,
                department=definition.department,
                level=definition.level,
                expected_apps=definition.expected_apps,
                created_by=created_by,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Role template created", template_id=template.id, name=template.name)
        return template

    async def update_role_template(
        self,
        template_id: str,
        definition: RoleTemplateDefinition,
    ) -> RoleTemplate:
        """Replace a template's content.

        Raises:
            ValidationError: If the name is blank or an app is listed twice.
            NotFoundError: If the template does not exist.
        """
        _validate_definition(definition)
        changes: dict[str, Any] = {
            "name": definition.name.strip(),
            "description": definition.description,
            "department": definition.department,
            "level": definition.level,
            "expected_apps": definition.expected_apps,
            "updated_at": self._clock(),
        }
        updated = await self._role_store.update_role_template(template_id, self._tenant_id, changes)
        if updated is None:
            raise NotFoundError(resource="RoleTemplate", resource_id=template_id)
        logger.info("Role template updated", template_id=template_id)
        return updated

    async def delete_role_template(self, template_id: str) -> None:
        """Delete a template.

        Raises:
            NotFoundError: If the template does not exist.
        """
        if not await self._role_store.delete_role_template(template_id, self._tenant_id):
            raise NotFoundError(resource="RoleTemplate", resource_id=template_id)
        logger.info("Role template deleted", template_id=template_id)

    async def get_role_template(self, template_id: str) -> RoleTemplate:
        """Return a template.

        Raises:
            NotFoundError: If the template does not exist.
        """
        template = await self._role_store.get_role_template(template_id, self._tenant_id)
        if template is None:
            raise NotFoundError(resource="RoleTemplate", resource_id=template_id)
        return template

    async def list_role_templates(self, department: str | None = None) -> list[RoleTemplate]:
        """List this tenant's role templates, optionally for one department."""
        return await self._role_store.list_role_templates(self._tenant_id, department=department)

    async def assign_role_to_user(
        self,
        user_id: str,
        template_id: str,
        assigned_by: str,
        reason: str | None = None,
    ) -> RoleAssignment:
        """Assign a role template to a user.

        Any currently active assignment of the user is deactivated first, and
        the user counts of the old and new templates are adjusted.

        Raises:
            NotFoundError: If the user or template does not exist.
        """
        if await self._directory.get_user(user_id) is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        await self.get_role_template(template_id)

        existing = await self._role_store.list_role_assignments(
            self._tenant_id, user_id=user_id, is_active=True
        )
        for assignment in existing:
            await self._role_store.update_role_assignment(
                assignment.id, self._tenant_id, {"is_active": False}
            )
            await self._role_store.increment_popularity(
                assignment.role_template_id, self._tenant_id, amount=-1
            )

        assignment = await self._role_store.create_role_assignment(
            RoleAssignment(
                tenant_id=self._tenant_id,
                user_id=user_id,
                role_template_id=template_id,
                assigned_by=assigned_by,
                assignment_reason=reason,
                is_active=True,
                assigned_at=self._clock(),
            )
        )
        await self._role_store.increment_popularity(template_id, self._tenant_id, amount=1)

        logger.info(
            "Role assigned to user",
            user_id=user_id,
            template_id=template_id,
            assignment_id=assignment.id,
            replaced=len(existing),
        )
        return assignment

    @staticmethod
    def get_prebuilt_templates() -> list[RoleTemplateDefinition]:
        """Starter templates for common roles, ready to pass to create_role_template."""
        return [
            RoleTemplateDefinition(
                name="Software Engineer",
                description="Standard access for software engineers",
                department="Engineering",
                level="individual_contributor",
                expected_apps=[
                    ExpectedApp(app_id="github", app_name="GitHub", access_type="member", required=True),
                    ExpectedApp(app_id="jira", app_name="Jira", access_type="member", required=True),
                    ExpectedApp(app_id="slack", app_name="Slack", access_type="member", required=True),
                    ExpectedApp(app_id="figma", app_name="Figma", access_type="viewer", required=False),
                ],
            ),
            RoleTemplateDefinition(
                name="Sales Representative",
                description="Standard access for sales reps",
                department="Sales",
                level="individual_contributor",
                expected_apps=[
                    ExpectedApp(app_id="salesforce", app_name="Salesforce", access_type="member", required=True),
                    ExpectedApp(app_id="hubspot", app_name="HubSpot", access_type="member", required=True),
                    ExpectedApp(
                        app_id="linkedin",
                        app_name="LinkedIn Sales Navigator",
                        access_type="member",
                        required=True,
                    ),
                    ExpectedApp(app_id="slack", app_name="Slack", access_type="member", required=True),
                ],
            ),
            RoleTemplateDefinition(
                name="Marketing Manager",
                description="Standard access for marketing managers",
                department="Marketing",
                level="manager",
                expected_apps=[
                    ExpectedApp(app_id="hubspot", app_name="HubSpot", access_type="admin", required=True),
                    ExpectedApp(app_id="google-ads", app_name="Google Ads", access_type="admin", required=True),
                    ExpectedApp(app_id="mailchimp", app_name="Mailchimp", access_type="admin", required=True),
                    ExpectedApp(app_id="canva", app_name="Canva", access_type="member", required=True),
                ],
            ),
            RoleTemplateDefinition(
                name="Finance Analyst",
                description="Standard access for finance analysts",
                department="Finance",
                level="individual_contributor",
                expected_apps=[
                    ExpectedApp(app_id="quickbooks", app_name="QuickBooks", access_type="member", required=True),
                    ExpectedApp(app_id="excel", app_name="Microsoft Excel", access_type="member", required=True),
                    ExpectedApp(app_id="netsuite", app_name="NetSuite", access_type="member", required=False),
                ],
            ),
            RoleTemplateDefinition(
                name="HR Manager",
                description="Standard access for HR managers",
                department="Human Resources",
                level="manager",
                expected_apps=[
                    ExpectedApp(app_id="bamboohr", app_name="BambooHR", access_type="admin", required=True),
                    ExpectedApp(app_id="greenhouse", app_name="Greenhouse", access_type="admin", required=True),
                    ExpectedApp(app_id="slack", app_name="Slack", access_type="member", required=True),
                ],
            ),
        ]

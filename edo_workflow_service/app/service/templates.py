# Template Registry service logic
import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from edo_workflow_service.app.models.enums import DocumentType
from edo_workflow_service.app.models.template_db import TemplateDB
from edo_workflow_service.app.service.commands.models import CreateTemplateCommand, UpdateTemplateCommand
from edo_workflow_service.app.service.exceptions import TemplateNotFoundError, WorkflowValidationError
from edo_workflow_service.infrastructure.database import template_store

logger = logging.getLogger(__name__)

UPDATABLE_TEMPLATE_FIELDS = frozenset({"name", "type", "content", "variables", "is_default", "is_active"})

# Built-in catalogue seeded by init_default_templates
BUILTIN_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Student certificate",
        "type": DocumentType.STUDENT_CERTIFICATE.value,
        "content": (
            "CERTIFICATE\n\n"
            "This is to certify that {student_name} is enrolled as a {study_form} student "
            "of the {faculty} faculty, year {course}, group {group}.\n\n"
            "Issued for presentation at: {destination}\n\n"
            "Date: {date}\n"
            "Responsible: {responsible_name}"
        ),
        "variables": {
            "student_name": "Student full name",
            "study_form": "Form of study",
            "faculty": "Faculty",
            "course": "Year of study",
            "group": "Group",
            "destination": "Where the certificate is presented",
            "date": "Issue date",
            "responsible_name": "Responsible officer",
        },
    },
    {
        "name": "Enrollment order",
        "type": DocumentType.ENROLLMENT_ORDER.value,
        "content": (
            "ORDER No. {order_number}\n\n"
            "On the enrollment of students\n\n"
            "The following applicants are enrolled in year {course} of the {faculty} faculty, "
            "programme {programme}, starting {start_date}:\n\n"
            "{student_list}\n\n"
            "Basis: {basis}\n\n"
            "Rector: {rector_name}"
        ),
        "variables": {
            "order_number": "Order number",
            "course": "Year of study",
            "faculty": "Faculty",
            "programme": "Programme",
            "start_date": "Start date",
            "student_list": "Enrolled students",
            "basis": "Grounds for the order",
            "rector_name": "Rector",
        },
    },
    {
        "name": "Administrative order",
        "type": DocumentType.ADMINISTRATIVE_ORDER.value,
        "content": (
            "ORDER No. {order_number}\n\n"
            "{subject}\n\n"
            "In order to {purpose}, I ORDER:\n\n"
            "{provisions}\n\n"
            "Control over execution is assigned to {controller_name}.\n\n"
            "Head of organisation: {head_name}"
        ),
        "variables": {
            "order_number": "Order number",
            "subject": "Subject of the order",
            "purpose": "Purpose",
            "provisions": "Ordering provisions",
            "controller_name": "Person in charge of execution",
            "head_name": "Head of organisation",
        },
    },
]


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise WorkflowValidationError(f"Template {field_name} must not be empty.", field=field_name)
    return value


async def get_template(db: AsyncIOMotorDatabase, template_id: str) -> TemplateDB:
    template = await template_store.get_template_by_id(db, template_id)
    if template is None:
        raise TemplateNotFoundError(template_id=template_id)
    return template


async def list_templates(db: AsyncIOMotorDatabase, template_type: Optional[str] = None) -> List[TemplateDB]:
    return await template_store.list_templates(db, template_type=template_type)


async def list_default_templates(db: AsyncIOMotorDatabase, template_type: Optional[str] = None) -> List[TemplateDB]:
    return await template_store.list_templates(db, template_type=template_type, is_default=True)


async def create_template(db: AsyncIOMotorDatabase, command: CreateTemplateCommand) -> TemplateDB:
    template = TemplateDB(
        name=_require_text(command.name, "name").strip(),
        type=command.type,
        content=_require_text(command.content, "content"),
        variables=command.variables,
        is_default=command.is_default,
        is_active=command.is_active,
        created_by=command.actor_id,
    )
    await template_store.add_template(db, template)
    if template.is_default:
        cleared = await template_store.clear_default_flag(db, template.type, keep_template_id=template.id)
        if cleared:
            logger.info(f"Template {template.id} is now the default for {template.type}; unmarked {cleared} previous default(s).")
    return template


async def update_template(db: AsyncIOMotorDatabase, command: UpdateTemplateCommand) -> TemplateDB:
    unknown = sorted(set(command.changes) - UPDATABLE_TEMPLATE_FIELDS)
    if unknown:
        raise WorkflowValidationError(f"Template fields cannot be updated: {', '.join(unknown)}.", field=unknown[0])
    # Explicit nulls are ignored except for the free-form variables map
    changes = {key: value for key, value in command.changes.items() if value is not None or key == "variables"}
    for text_field in ("name", "content"):
        if text_field in changes:
            changes[text_field] = _require_text(changes[text_field], text_field)
    if "type" in changes:
        changes["type"] = DocumentType(changes["type"]).value

    if not changes:
        return await get_template(db, command.template_id)

    updated = await template_store.update_template(db, command.template_id, changes)
    if updated is None:
        raise TemplateNotFoundError(template_id=command.template_id)
    if updated.is_default and ("is_default" in changes or "type" in changes):
        await template_store.clear_default_flag(db, updated.type, keep_template_id=updated.id)
    return updated


async def delete_template(db: AsyncIOMotorDatabase, template_id: str) -> None:
    # Documents keep their copied content; template_id on them is informational
    if not await template_store.delete_template(db, template_id):
        raise TemplateNotFoundError(template_id=template_id)


async def init_default_templates(db: AsyncIOMotorDatabase, actor_id: str) -> List[TemplateDB]:
    """Seeds the built-in catalogue, skipping (name, type) pairs that already exist.

    Returns only the templates created by this call, so a second call returns [].
    """
    created: List[TemplateDB] = []
    for builtin in BUILTIN_TEMPLATES:
        existing = await template_store.find_template_by_name_and_type(db, builtin["name"], builtin["type"])
        if existing is not None:
            logger.debug(f"Built-in template '{builtin['name']}' already present as {existing.id}; skipping.")
            continue
        has_default = await template_store.list_templates(db, template_type=builtin["type"], is_default=True)
        template = TemplateDB(
            name=builtin["name"],
            type=builtin["type"],
            content=builtin["content"],
            variables=builtin["variables"],
            is_default=not has_default,
            created_by=actor_id,
        )
        created.append(await template_store.add_template(db, template))
    logger.info(f"Default template initialisation created {len(created)} template(s).")
    return created


async def resolve_template_for_creation(
    db: AsyncIOMotorDatabase,
    document_type: str,
    template_id: Optional[str],
    content: Optional[str],
) -> Optional[TemplateDB]:
    """Picks the template that supplies a new document's content.

    An explicit template must exist, be active and match the document type.
    Without one, the type's default template is used only when no content
    was provided.
    """
    if template_id:
        template = await get_template(db, template_id)
        if not template.is_active:
            raise WorkflowValidationError(f"Template '{template_id}' is inactive.", field="template_id")
        if template.type != DocumentType(document_type).value:
            raise WorkflowValidationError(
                f"Template '{template_id}' is for {template.type} documents, not {document_type}.",
                field="template_id",
            )
        return template

    if content is not None and content.strip():
        return None

    defaults = await list_default_templates(db, template_type=DocumentType(document_type).value)
    return defaults[0] if defaults else None

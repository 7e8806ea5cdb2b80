import logging
from typing import Any, Iterator, List, Mapping

from formpulse.analytics import build_report
from formpulse.errors import FormLocked, FormNotPublished, NotFormOwner
from formpulse.live import SubscriptionRegistry
from formpulse.models import AnalyticsReport, Form, FormDefinition, Submission, utcnow
from formpulse.store import FormStore
from formpulse.validation import validate, validate_form_definition

logger = logging.getLogger(__name__)


class FormService:
    """Ingestion, authoring and reporting on top of a store and a registry."""

    def __init__(self, store: FormStore, registry: SubscriptionRegistry):
        self.store = store
        self.registry = registry

    async def submit(self, form_id: str, answers: Mapping[str, Any]) -> Submission:
        """Validate, persist and announce a submission.

        Lookup and validation errors propagate to the caller. The broadcast
        never fails the submission: the registry swallows delivery errors.
        """
        form = self.store.get_form(form_id)
        if not form.is_published:
            raise FormNotPublished(form_id)

        answers = dict(answers or {})
        validate(form.fields, answers)

        submission = Submission(form_id=form.id, answers=answers)
        self.store.insert_submission(submission)
        logger.info("Accepted submission %s for form %s", submission.id, form.id)

        await self.registry.publish(form.id, submission)
        return submission

    def aggregate(self, form_id: str) -> AnalyticsReport:
        form = self.store.get_form(form_id)
        return build_report(form, self.store.iter_submissions(form_id))

    def get_form(self, form_id: str) -> Form:
        return self.store.get_form(form_id)

    def get_owned_form(self, form_id: str, owner_id: str) -> Form:
        form = self.store.get_form(form_id)
        if form.owner_id != owner_id:
            raise NotFormOwner(form_id)
        return form

    def list_forms(self, owner_id: str) -> List[Form]:
        return self.store.list_forms(owner_id)

    def create_form(self, definition: FormDefinition, owner_id: str) -> Form:
        validate_form_definition(definition.title, definition.fields)
        form = Form(
            title=definition.title,
            status=definition.status,
            fields=definition.fields,
            owner_id=owner_id,
        )
        form.updated_at = form.created_at
        self.store.save_form(form)
        logger.info("Created form %s with %d fields for %s", form.id, len(form.fields), owner_id)
        return form

    def update_form(self, form_id: str, definition: FormDefinition, owner_id: str) -> Form:
        form = self.get_owned_form(form_id, owner_id)
        if form.is_published and definition.fields != form.fields:
            raise FormLocked(form_id)
        if form.is_published and definition.status != form.status:
            raise FormLocked(
                form_id, f"published form {form_id} cannot return to {definition.status}"
            )
        validate_form_definition(definition.title, definition.fields)

        form.title = definition.title
        form.status = definition.status
        form.fields = definition.fields
        form.updated_at = utcnow()
        self.store.save_form(form)
        logger.info("Updated form %s (status=%s)", form.id, form.status)
        return form

    def iter_submissions(self, form_id: str, owner_id: str) -> Iterator[Submission]:
        self.get_owned_form(form_id, owner_id)
        return self.store.iter_submissions(form_id)

"""CRM request body construction from a client's field mapping.

A field mapping maps a form field name to the CRM field it should be sent
as. Names under ``_meta.`` refer to submission metadata instead of answers:

    {"email": "Email", "_meta.ip": "SourceIP", "_meta.utm_source": "Channel"}
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from shared.schemas import AnswerValue, SubmissionMeta

META_FIELD_PREFIX = "_meta."

# _meta.utm_* names resolved through the submission's UTM mapping
_UTM_META_FIELDS = {
    "utm_source": "source",
    "utm_medium": "medium",
    "utm_campaign": "campaign",
}


def resolve_field_mapping(
    field_mapping: Mapping[str, str] | None, answers: Mapping[str, AnswerValue]
) -> dict[str, str]:
    """Mapping to use for a client. Empty means pass every answer through unchanged."""
    if field_mapping:
        return dict(field_mapping)
    return {key: key for key in answers}


def _meta_value(
    name: str, meta: SubmissionMeta, submission_id: str, form_id: str
) -> tuple[bool, Any]:
    """Look up a ``_meta.`` suffix. Returns (found, value)."""
    if name in _UTM_META_FIELDS:
        utm = meta.utm or {}
        key = _UTM_META_FIELDS[name]
        if key not in utm:
            return False, None
        return True, utm[key]

    values = {
        "submissionId": submission_id,
        "formId": form_id,
        "formSlug": meta.form_slug,
        "formName": meta.form_name,
        "ip": meta.ip,
        "userAgent": meta.user_agent,
        "referrer": meta.referrer,
        "createdAt": meta.created_at,
    }
    if name not in values:
        return False, None
    return True, values[name]


def build_request_body(
    answers: Mapping[str, AnswerValue],
    field_mapping: Mapping[str, str],
    meta: SubmissionMeta,
    submission_id: UUID | str,
    form_id: UUID | str,
) -> dict[str, Any]:
    """Build the JSON body sent to a CRM client.

    Answers missing from the submission, unknown ``_meta.`` names and UTM
    values the submission never had are left out of the body. Metadata that
    exists but is empty (no referrer, say) is sent as null.

    Args:
        answers: Answer values keyed by question key.
        field_mapping: Form field -> CRM field.
        meta: Submission metadata.
        submission_id: Submission id, for ``_meta.submissionId``.
        form_id: Form id, for ``_meta.formId``.

    Returns:
        CRM field -> value.
    """
    body: dict[str, Any] = {}

    for form_field, crm_field in field_mapping.items():
        if form_field.startswith(META_FIELD_PREFIX):
            found, value = _meta_value(
                form_field[len(META_FIELD_PREFIX):], meta, str(submission_id), str(form_id)
            )
            if found:
                body[crm_field] = value
        elif form_field in answers:
            body[crm_field] = answers[form_field]

    return body

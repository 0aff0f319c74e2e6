"""
Outbound e-mail.

Workflow code never sends mail itself. It appends ``EmailMessage`` tuples to a
per-request ``Outbox``. Once the request transaction has committed the outbox is
handed to ``schedule_dispatch``, which delivers it on a background task.
Delivery failures are logged and dropped.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

import httpx
from jinja2 import DictLoader, Environment, TemplateNotFound

from doccontrol.errors import Unexpected
from doccontrol.settings import get_settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Unexpected):
    error_code = "EMAIL_DELIVERY_FAILED"
    default_message = "E-mail could not be delivered"


@dataclass(frozen=True)
class EmailMessage:
    to: tuple[str, ...]
    subject: str
    template: str
    data: dict[str, Any] = field(default_factory=dict)


class Outbox:
    def __init__(self) -> None:
        self._messages: list[EmailMessage] = []

    def add(self, to: str | list[str] | tuple[str, ...], subject: str, template: str, **data: Any) -> None:
        recipients = (to,) if isinstance(to, str) else tuple(to)
        recipients = tuple(r for r in recipients if r)
        if not recipients:
            return
        self._messages.append(EmailMessage(to=recipients, subject=subject, template=template, data=data))

    def __iter__(self) -> Iterator[EmailMessage]:
        return iter(self._messages)

    def __len__(self) -> int:
        return len(self._messages)


# ── Templates ─────────────────────────────────────────────────────────────────

_LAYOUT = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: {{ accent }}; padding: 20px; border-radius: 8px 8px 0 0;">
    <h1 style="color: white; margin: 0; font-size: 24px;">{% block heading %}{% endblock %}</h1>
  </div>
  <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none; border-radius: 0 0 8px 8px;">
    <p style="color: #334155; font-size: 16px; line-height: 1.6;">{% block intro %}{% endblock %}</p>
    <div style="background: white; border: 1px solid #e2e8f0; border-radius: 8px; padding: 16px; margin: 16px 0;">
      <p style="margin: 0 0 8px 0; color: #64748b; font-size: 12px; text-transform: uppercase;">Document</p>
      <p style="margin: 0 0 4px 0; color: #1e293b; font-size: 18px; font-weight: bold;">{{ document_title }}</p>
      <p style="margin: 0; color: #64748b; font-size: 14px; font-family: monospace;">{{ document_number }}</p>
    </div>
    {% block details %}{% endblock %}
    <a href="{{ app_url }}/dashboard/documents/{{ document_id }}"
       style="display: inline-block; background: {{ accent }}; color: white; padding: 12px 24px; border-radius: 6px; text-decoration: none; margin-top: 16px;">
      {% block action %}View Document{% endblock %} &rarr;
    </a>
  </div>
  <p style="color: #94a3b8; font-size: 12px; text-align: center; margin-top: 16px;">
    This is an automated notification from Document Controller.
  </p>
</div>
"""

TEMPLATES: dict[str, str] = {
    "_layout": _LAYOUT,
    "_fallback": "<p>Notification: {{ template }}</p>",
    "assignmentReviewer": """\
{% extends "_layout" %}{% set accent = "#667eea" %}
{% block heading %}Review Assignment{% endblock %}
{% block intro %}You have been assigned as a <strong>reviewer</strong> for the following document:{% endblock %}
{% block details %}<p style="color: #64748b; font-size: 14px;">Assigned by: {{ assigner_name }}</p>{% endblock %}
{% block action %}Review Document{% endblock %}
""",
    "assignmentApprover": """\
{% extends "_layout" %}{% set accent = "#10b981" %}
{% block heading %}Approval Assignment{% endblock %}
{% block intro %}You have been assigned as an <strong>approver</strong> for the following document:{% endblock %}
{% block details %}<p style="color: #64748b; font-size: 14px;">Assigned by: {{ assigner_name }}</p>{% endblock %}
""",
    "reviewSubmitted": """\
{% extends "_layout" %}{% set accent = "#3b82f6" %}
{% block heading %}Review Submitted{% endblock %}
{% block intro %}A review has been submitted for your document:{% endblock %}
{% block details %}
<p style="color: #64748b; font-size: 14px;"><strong>Reviewer:</strong> {{ reviewer_name }}</p>
<p style="color: #64748b; font-size: 14px;"><strong>Decision:</strong>
{%- if review_status == "approved" %} Approved{% elif review_status == "requested_changes" %} Changes Requested{% else %} Reviewed{% endif %}</p>
{% if comments %}<p style="color: #64748b; font-size: 14px;"><strong>Comments:</strong> {{ comments }}</p>{% endif %}
{% endblock %}
""",
    "approvalSubmitted": """\
{% extends "_layout" %}{% set accent = "#10b981" if decision == "approved" else "#ef4444" %}
{% block heading %}{% if decision == "approved" %}Document Approved{% else %}Document Rejected{% endif %}{% endblock %}
{% block intro %}Your document has been <strong>{{ decision }}</strong>:{% endblock %}
{% block details %}
<p style="color: #64748b; font-size: 14px;"><strong>By:</strong> {{ approver_name }}</p>
{% if comments %}<p style="color: #64748b; font-size: 14px;"><strong>Comments:</strong> {{ comments }}</p>{% endif %}
{% endblock %}
""",
    "readyForApproval": """\
{% extends "_layout" %}{% set accent = "#f59e0b" %}
{% block heading %}Ready for Your Approval{% endblock %}
{% block intro %}All reviews have been completed. This document is now ready for your approval:{% endblock %}
{% block action %}Review &amp; Approve{% endblock %}
""",
    "reminder": """\
{% extends "_layout" %}{% set overdue = days_remaining|int < 0 %}{% set accent = "#ef4444" if overdue else "#f59e0b" %}
{% block heading %}{% if overdue %}Overdue Document{% else %}Deadline Approaching{% endif %}{% endblock %}
{% block intro %}{% if overdue -%}
This document is <strong>{{ -(days_remaining|int) }} days overdue</strong>:
{%- else -%}
This document is due in <strong>{{ days_remaining }} days</strong>:
{%- endif %}{% endblock %}
{% block details %}
<p style="color: #64748b; font-size: 14px;"><strong>Target Date:</strong> {{ target_date }}</p>
<p style="color: #64748b; font-size: 14px;"><strong>Your Role:</strong> {{ recipient_role }}</p>
{% endblock %}
{% block action %}Take Action{% endblock %}
""",
    "statusChanged": """\
{% extends "_layout" %}{% set accent = "#64748b" %}
{% block heading %}Status Changed{% endblock %}
{% block intro %}The status of your document changed from <strong>{{ old_status }}</strong> to <strong>{{ new_status }}</strong>.{% endblock %}
{% block details %}
<p style="color: #64748b; font-size: 14px;"><strong>By:</strong> {{ actor_name }}</p>
{% if comments %}<p style="color: #64748b; font-size: 14px;"><strong>Comments:</strong> {{ comments }}</p>{% endif %}
{% endblock %}
""",
}

_env = Environment(loader=DictLoader(TEMPLATES), autoescape=True)


def render_email(template: str, data: dict[str, Any]) -> str:
    """Render a named template. Unknown or private names fall back to a one-line body."""
    context = {"app_url": get_settings().APP_URL.rstrip("/"), **data}
    if template.startswith("_"):
        return _env.get_template("_fallback").render(template=template)
    try:
        compiled = _env.get_template(template)
    except TemplateNotFound:
        return _env.get_template("_fallback").render(template=template)
    return compiled.render(**context)


# ── Delivery ──────────────────────────────────────────────────────────────────

async def send_email(
    to: tuple[str, ...] | list[str],
    subject: str,
    html: str,
    client: httpx.AsyncClient | None = None,
) -> str | None:
    """
    POST one message to the Resend API. Returns the provider message id.
    Raises ``EmailDeliveryError`` when delivery is not configured or fails.
    """
    settings = get_settings()
    if not settings.RESEND_API_KEY:
        logger.info("RESEND_API_KEY not set, skipping email. to=%s subject=%s", list(to), subject)
        raise EmailDeliveryError("Email service not configured")

    payload = {"from": settings.FROM_EMAIL, "to": list(to), "subject": subject, "html": html}
    headers = {"Authorization": f"Bearer {settings.RESEND_API_KEY}", "Content-Type": "application/json"}

    async def _post(http: httpx.AsyncClient) -> httpx.Response:
        return await http.post(settings.RESEND_API_URL, json=payload, headers=headers)

    try:
        if client is not None:
            response = await _post(client)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(settings.EMAIL_TIMEOUT_SECONDS)) as http:
                response = await _post(http)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error("Resend API error. status=%s body=%s", e.response.status_code, e.response.text)
        raise EmailDeliveryError(f"Resend API error ({e.response.status_code})") from e
    except httpx.RequestError as e:
        logger.error("Request error calling Resend: %s", e)
        raise EmailDeliveryError(str(e)) from e

    message_id = response.json().get("id")
    logger.info("Email sent. id=%s to=%s template_subject=%s", message_id, list(to), subject)
    return message_id


async def dispatch_outbox(outbox: Outbox, client: httpx.AsyncClient | None = None) -> int:
    """Best-effort delivery of every queued message. Returns how many were accepted."""
    sent = 0
    for message in outbox:
        try:
            html = render_email(message.template, message.data)
            await send_email(message.to, message.subject, html, client=client)
            sent += 1
        except EmailDeliveryError as e:
            logger.warning("Email dropped. template=%s to=%s reason=%s", message.template, list(message.to), e.message)
        except Exception:
            logger.exception("Email dispatch failed. template=%s to=%s", message.template, list(message.to))
    return sent


_inflight: set[asyncio.Task] = set()


def schedule_dispatch(outbox: Outbox) -> asyncio.Task | None:
    """Fire and forget. The task reference is held until it finishes."""
    if not len(outbox):
        return None
    task = asyncio.get_running_loop().create_task(dispatch_outbox(outbox))
    _inflight.add(task)
    task.add_done_callback(_inflight.discard)
    return task

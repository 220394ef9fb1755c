"""Owner notification templates for moderation decisions."""

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from ..models.models import SubmissionStatus
from .jobs import NotificationJob, TemplateKind, idempotency_key

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: linear-gradient(135deg, #2953A6, #6bb7e3); color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
    <h1>{{ portal_name }}</h1>
    <p>Community Photo Gallery</p>
  </div>
  <div style="background: white; padding: 30px; border-radius: 0 0 10px 10px; color: #333;">
    <p>Hello {{ owner_name }},</p>
    {% block content %}{% endblock %}
    <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
    <p style="color: #666; font-size: 12px;">
      This email was sent by the {{ portal_name }} portal about your photo submission.
    </p>
  </div>
</div>
"""

_BODIES = {
    TemplateKind.APPROVAL: """
{% extends "layout.html" %}
{% block content %}
<p>Good news! Your photo <strong>{{ title }}</strong> has been approved and is now
visible in the community gallery.</p>
<p>Thank you for sharing it with your neighbors.</p>
{% endblock %}
""",
    TemplateKind.REJECTION: """
{% extends "layout.html" %}
{% block content %}
<p>Your photo <strong>{{ title }}</strong> was not approved for the community gallery.</p>
<div style="background: #fdf2f2; border-left: 4px solid #e02424; padding: 12px 16px; margin: 20px 0;">
  <strong>Reason:</strong> {{ reason }}
</div>
<p>You are welcome to submit a new photo that follows the community guidelines.</p>
{% endblock %}
""",
}

_SUBJECTS = {
    TemplateKind.APPROVAL: "{prefix}: Your photo \"{title}\" was approved",
    TemplateKind.REJECTION: "{prefix}: Your photo \"{title}\" was not approved",
}

_env = Environment(
    loader=DictLoader(
        {
            "layout.html": _LAYOUT,
            "approval.html": _BODIES[TemplateKind.APPROVAL],
            "rejection.html": _BODIES[TemplateKind.REJECTION],
        }
    ),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render(kind: TemplateKind, **context) -> str:
    return _env.get_template(f"{kind.value}.html").render(**context).strip()


def build_job(submission, recipient: str, owner_name: str, portal_name: str,
              subject_prefix: str = "SPR-HOA") -> NotificationJob:
    """Render the owner notice for a submission that just reached a terminal state"""
    if submission.status == SubmissionStatus.APPROVED:
        kind = TemplateKind.APPROVAL
    elif submission.status == SubmissionStatus.REJECTED:
        kind = TemplateKind.REJECTION
    else:
        raise ValueError(f"No notification for status {submission.status!r}")

    body = render(
        kind,
        portal_name=portal_name,
        owner_name=owner_name or recipient,
        title=submission.title,
        reason=submission.rejection_reason or "",
    )
    subject = _SUBJECTS[kind].format(prefix=subject_prefix, title=submission.title)

    return NotificationJob(
        idempotency_key=idempotency_key(submission.id, submission.status, recipient),
        submission_id=submission.id,
        recipient=recipient,
        kind=kind,
        subject=subject,
        body_html=body,
    )

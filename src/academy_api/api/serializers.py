"""
academy_api.api.serializers

Render ORM rows into the JSON shapes returned by the routers.

Responsibilities:
- Keep field selection for each resource in one place.
- Leave value encoding (UUIDs, datetimes, enums) to `jsonable_encoder`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from academy_api.db.models import (
    Activity,
    ActivityCompletion,
    AssetDelivery,
    Block,
    CertificateContent,
    ChatMessage,
    Course,
    Enrollment,
    Environment,
    EnvironmentLiveSettings,
    FeedbackContent,
    FeedbackSubmission,
    IssuedCertificate,
    LiveSession,
    LiveSessionParticipant,
    Order,
    QuizQuestion,
    QuizSubmission,
    Team,
    TeamInvitation,
    TeamMember,
    Template,
    User,
)


def user_out(u: User) -> dict[str, Any]:
    return {"id": u.id, "name": u.name, "email": u.email, "role": u.role, "company_name": u.company_name}


def environment_out(e: Environment) -> dict[str, Any]:
    return {"id": e.id, "name": e.name, "domain": e.domain, "owner_id": e.owner_id, "created_at": e.created_at}


def course_out(c: Course) -> dict[str, Any]:
    return {
        "id": c.id,
        "environment_id": c.environment_id,
        "template_id": c.template_id,
        "title": c.title,
        "description": c.description,
        "status": c.status,
        "enrollment_limit": c.enrollment_limit,
        "created_by": c.created_by,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }


def activity_out(a: Activity) -> dict[str, Any]:
    return {
        "id": a.id,
        "block_id": a.block_id,
        "title": a.title,
        "activity_type": a.activity_type,
        "is_required": a.is_required,
        "points": a.points,
        "order": a.position,
    }


def block_out(b: Block, *, with_activities: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {"id": b.id, "template_id": b.template_id, "title": b.title, "order": b.position}
    if with_activities:
        out["activities"] = [activity_out(a) for a in b.activities]
    return out


def template_out(t: Template, *, with_blocks: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": t.id,
        "environment_id": t.environment_id,
        "title": t.title,
        "description": t.description,
        "created_by": t.created_by,
        "created_at": t.created_at,
    }
    if with_blocks:
        out["blocks"] = [block_out(b, with_activities=True) for b in t.blocks]
    return out


def quiz_question_out(q: QuizQuestion) -> dict[str, Any]:
    return {
        "id": q.id,
        "activity_id": q.activity_id,
        "question": q.question,
        "question_type": q.question_type,
        "options": q.options,
        "correct_answer": q.correct_answer,
        "points": q.points,
    }


def feedback_content_out(f: FeedbackContent) -> dict[str, Any]:
    return {
        "id": f.id,
        "activity_id": f.activity_id,
        "title": f.title,
        "description": f.description,
        "created_by": f.created_by,
        "questions": [
            {
                "id": q.id,
                "question_text": q.question_text,
                "question_type": q.question_type,
                "is_required": q.is_required,
                "options": q.options,
                "order": q.position,
            }
            for q in f.questions
        ],
    }


def enrollment_out(e: Enrollment) -> dict[str, Any]:
    return {
        "id": e.id,
        "user_id": e.user_id,
        "course_id": e.course_id,
        "environment_id": e.environment_id,
        "status": e.status,
        "progress_percentage": e.progress_percentage,
        "enrolled_at": e.enrolled_at,
        "completed_at": e.completed_at,
        "expires_at": e.expires_at,
        "last_activity_at": e.last_activity_at,
        "created_at": e.created_at,
        "updated_at": e.updated_at,
    }


def completion_out(c: ActivityCompletion) -> dict[str, Any]:
    return {
        "id": c.id,
        "enrollment_id": c.enrollment_id,
        "activity_id": c.activity_id,
        "status": c.status,
        "score": c.score,
        "time_spent": c.time_spent,
        "attempts": c.attempts,
        "started_at": c.started_at,
        "completed_at": c.completed_at,
    }


def quiz_submission_out(s: QuizSubmission) -> dict[str, Any]:
    return {
        "id": s.id,
        "enrollment_id": s.enrollment_id,
        "activity_id": s.activity_id,
        "user_id": s.user_id,
        "attempt_number": s.attempt_number,
        "score": s.score,
        "max_score": s.max_score,
        "submitted_at": s.submitted_at,
        "responses": [
            {
                "quiz_question_id": r.quiz_question_id,
                "user_response": r.user_response,
                "is_correct": r.is_correct,
                "points_earned": r.points_earned,
                "max_points": r.max_points,
            }
            for r in s.responses
        ],
    }


def feedback_submission_out(s: FeedbackSubmission) -> dict[str, Any]:
    return {
        "id": s.id,
        "feedback_content_id": s.feedback_content_id,
        "user_id": s.user_id,
        "status": s.status,
        "submission_date": s.submission_date,
        "answers": [
            {
                "feedback_question_id": a.feedback_question_id,
                "answer_text": a.answer_text,
                "answer_value": a.answer_value,
            }
            for a in s.answers
        ],
        "created_at": s.created_at,
        "updated_at": s.updated_at,
    }


CERTIFICATE_CONTENT_FIELDS = (
    "id",
    "activity_id",
    "title",
    "description",
    "certificate_type",
    "template_design",
    "template_name",
    "background_url",
    "logo_url",
    "signature_url",
    "signatory_name",
    "signatory_title",
    "signatory_organization",
    "custom_fields",
    "completion_criteria",
    "expiry_period",
    "expiry_period_unit",
    "allow_download",
    "download_formats",
    "allow_sharing",
    "sharing_platforms",
    "verification_enabled",
    "verification_method",
    "created_by",
    "created_at",
    "updated_at",
)


def certificate_content_out(c: CertificateContent) -> dict[str, Any]:
    out = {field: getattr(c, field) for field in CERTIFICATE_CONTENT_FIELDS}
    out["metadata"] = c.meta
    return out


def issued_certificate_out(c: IssuedCertificate) -> dict[str, Any]:
    return {
        "id": c.id,
        "certificate_content_id": c.certificate_content_id,
        "user_id": c.user_id,
        "course_id": c.course_id,
        "certificate_number": c.certificate_number,
        "status": c.status,
        "issued_date": c.issued_date,
        "expiry_date": c.expiry_date,
        "custom_fields": c.custom_fields,
    }


def order_out(o: Order) -> dict[str, Any]:
    return {
        "id": o.id,
        "order_number": o.order_number,
        "user_id": o.user_id,
        "environment_id": o.environment_id,
        "total_amount": o.total_amount,
        "currency": o.currency,
        "status": o.status,
        "payment_method": o.payment_method,
        "payment_id": o.payment_id,
        "billing_name": o.billing_name,
        "billing_email": o.billing_email,
        "billing_address": o.billing_address,
        "billing_city": o.billing_city,
        "billing_country": o.billing_country,
        "notes": o.notes,
        "items": [
            {
                "id": i.id,
                "product_id": i.product_id,
                "quantity": i.quantity,
                "price": i.price,
                "discount": i.discount,
                "total": i.total,
            }
            for i in o.items
        ],
        "created_at": o.created_at,
        "updated_at": o.updated_at,
    }


def delivery_out(d: AssetDelivery, now: datetime) -> dict[str, Any]:
    asset = d.product_asset
    return {
        "id": d.id,
        "order_id": d.order_id,
        "download_token": d.download_token,
        "status": d.status,
        "access_count": d.access_count,
        "max_access_count": d.max_access_count,
        "access_granted_at": d.access_granted_at,
        "expires_at": d.expires_at,
        "last_accessed_at": d.last_accessed_at,
        "is_valid": d.is_valid(now),
        "asset": {"id": asset.id, "name": asset.name, "asset_type": asset.asset_type},
    }


def live_settings_out(s: EnvironmentLiveSettings) -> dict[str, Any]:
    return {
        "environment_id": s.environment_id,
        "live_sessions_enabled": s.live_sessions_enabled,
        "monthly_minutes_limit": s.monthly_minutes_limit,
        "monthly_minutes_used": s.monthly_minutes_used,
        "remaining_minutes": s.remaining_minutes(),
        "has_exceeded_limit": s.has_exceeded_limit(),
        "max_concurrent_sessions": s.max_concurrent_sessions,
        "max_participants_per_session": s.max_participants_per_session,
        "billing_cycle_resets_at": s.billing_cycle_resets_at,
    }


def participant_out(p: LiveSessionParticipant) -> dict[str, Any]:
    return {
        "user_id": p.user_id,
        "role": p.role,
        "joined_at": p.joined_at,
        "left_at": p.left_at,
        "duration_seconds": p.duration_seconds,
    }


def live_session_out(
    s: LiveSession, participants: list[LiveSessionParticipant] | None = None
) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": s.id,
        "environment_id": s.environment_id,
        "course_id": s.course_id,
        "created_by": s.created_by,
        "title": s.title,
        "description": s.description,
        "room_name": s.room_name,
        "status": s.status,
        "scheduled_at": s.scheduled_at,
        "started_at": s.started_at,
        "ended_at": s.ended_at,
        "duration_minutes": s.duration_minutes,
        "max_participants": s.max_participants,
        "settings": s.settings,
    }
    if participants is not None:
        out["participants"] = [participant_out(p) for p in participants]
    return out


def chat_message_out(m: ChatMessage) -> dict[str, Any]:
    return {
        "id": m.id,
        "course_id": m.course_id,
        "user_id": m.user_id,
        "content": m.content,
        "parent_message_id": m.parent_message_id,
        "created_at": m.created_at,
    }


def team_out(t: Team, *, member_count: int | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": t.id,
        "environment_id": t.environment_id,
        "name": t.name,
        "description": t.description,
        "created_by": t.created_by,
        "created_at": t.created_at,
    }
    if member_count is not None:
        out["member_count"] = member_count
    return out


def team_member_out(m: TeamMember, u: User) -> dict[str, Any]:
    return {"user_id": m.user_id, "name": u.name, "email": u.email, "role": m.role, "joined_at": m.created_at}


def invitation_out(i: TeamInvitation) -> dict[str, Any]:
    return {
        "id": i.id,
        "team_id": i.team_id,
        "email": i.email,
        "role": i.role,
        "token": i.token,
        "invited_by": i.invited_by,
        "created_at": i.created_at,
    }

"""
academy_api.db.models

Persistence schema for the academy API, split by domain.

Responsibilities:
- Re-export every ORM model so `Base.metadata` is complete once this package is imported.
"""

from academy_api.db.models.analytics import AcademyVisitEvent, AcademyVisitor, EnrollmentAnalytics
from academy_api.db.models.cache import CacheLock
from academy_api.db.models.certificates import (
    CertificateContent,
    CertificateType,
    IssuedCertificate,
    TemplateDesign,
)
from academy_api.db.models.chat import (
    ArchivalJob,
    ArchivalJobStatus,
    ArchivedChatMessage,
    ChatMessage,
    ChatSearchIndex,
    SearchLog,
)
from academy_api.db.models.commerce import (
    AssetDelivery,
    DeliveryStatus,
    Invoice,
    InvoiceStatus,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductAsset,
    ProductCourse,
    Transaction,
)
from academy_api.db.models.courses import (
    Activity,
    ActivityType,
    Block,
    Course,
    CourseStatus,
    FeedbackContent,
    FeedbackQuestion,
    FeedbackQuestionType,
    QuizQuestion,
    Template,
)
from academy_api.db.models.identity import Environment, EnvironmentUser, User, UserRole
from academy_api.db.models.learning import (
    ActivityCompletion,
    CompletionStatus,
    Enrollment,
    EnrollmentStatus,
    FeedbackAnswer,
    FeedbackSubmission,
    FeedbackSubmissionStatus,
    QuizResponse,
    QuizSubmission,
)
from academy_api.db.models.live import (
    EnvironmentLiveSettings,
    LiveSession,
    LiveSessionParticipant,
    LiveSessionStatus,
    ParticipantRole,
    room_name_for,
)
from academy_api.db.models.teams import Team, TeamInvitation, TeamMember, TeamRole

__all__ = [
    "AcademyVisitEvent",
    "AcademyVisitor",
    "Activity",
    "ActivityCompletion",
    "ActivityType",
    "ArchivalJob",
    "ArchivalJobStatus",
    "ArchivedChatMessage",
    "AssetDelivery",
    "Block",
    "CacheLock",
    "CertificateContent",
    "CertificateType",
    "ChatMessage",
    "ChatSearchIndex",
    "CompletionStatus",
    "Course",
    "CourseStatus",
    "DeliveryStatus",
    "Enrollment",
    "EnrollmentAnalytics",
    "EnrollmentStatus",
    "Environment",
    "EnvironmentLiveSettings",
    "EnvironmentUser",
    "FeedbackAnswer",
    "FeedbackContent",
    "FeedbackQuestion",
    "FeedbackQuestionType",
    "FeedbackSubmission",
    "FeedbackSubmissionStatus",
    "Invoice",
    "InvoiceStatus",
    "IssuedCertificate",
    "LiveSession",
    "LiveSessionParticipant",
    "LiveSessionStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "ParticipantRole",
    "Product",
    "ProductAsset",
    "ProductCourse",
    "QuizQuestion",
    "QuizResponse",
    "QuizSubmission",
    "SearchLog",
    "Team",
    "TeamInvitation",
    "TeamMember",
    "TeamRole",
    "Template",
    "TemplateDesign",
    "Transaction",
    "User",
    "UserRole",
    "room_name_for",
]

from sqlalchemy import (
    BigInteger,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
)

SCHEMA_VERSION = 1

metadata = MetaData()


def _id() -> Column:
    return Column("id", String(32), primary_key=True)


def _created() -> Column:
    return Column("created_at", Text, nullable=False)


schema_meta = Table(
    "schema_meta",
    metadata,
    Column("name", String(64), primary_key=True),
    Column("value", Text, nullable=False),
)

users = Table(
    "users",
    metadata,
    _id(),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", Text),
    Column("role", String(32), nullable=False, server_default="USER"),
    Column("password_hash", Text),
    Column("subscription_type", String(32)),
    Column("subscription_status", String(32), nullable=False, server_default="TRIAL"),
    Column("subscription_expires_at", Text),
    Column("referred_by", String(16)),
    _created(),
    Column("updated_at", Text),
)

ai_tutors = Table(
    "ai_tutors",
    metadata,
    _id(),
    Column("name", Text, nullable=False),
    Column("specialty", Text, nullable=False),
    Column("description", Text),
    _created(),
)

tracks = Table(
    "tracks",
    metadata,
    _id(),
    Column("title", Text, nullable=False),
    Column("slug", String(255), nullable=False, unique=True),
    Column("summary", Text),
    Column("ai_tutor_id", String(32), ForeignKey("ai_tutors.id", ondelete="SET NULL")),
    Column("difficulty", String(32), nullable=False, server_default="beginner"),
    Column("estimated_hours", Integer, server_default="0"),
    Column("is_published", Integer, nullable=False, server_default="0"),
    _created(),
    Column("updated_at", Text),
    Column("deleted_at", Text),
)

lessons = Table(
    "lessons",
    metadata,
    _id(),
    Column("track_id", String(32), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False),
    Column("title", Text, nullable=False),
    Column("position", Integer, nullable=False, server_default="1"),
    Column("content", Text, nullable=False, server_default=""),
    Column("objectives", Text, nullable=False, server_default="[]"),
    Column("estimated_minutes", Integer, nullable=False, server_default="30"),
    Column("is_required", Integer, nullable=False, server_default="1"),
    Column("podcast_url", Text),
    Column("podcast_duration", Integer),
    Column("pdf_url", Text),
    _created(),
    Column("updated_at", Text),
    Column("deleted_at", Text),
)

quizzes = Table(
    "quizzes",
    metadata,
    _id(),
    Column("lesson_id", String(32), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False),
    Column("title", Text, nullable=False),
    Column("time_limit", Integer, nullable=False, server_default="30"),
    Column("exam_type", String(16), nullable=False, server_default="QUIZ"),
    Column("passing_score", Integer, nullable=False, server_default="70"),
    _created(),
)

questions = Table(
    "questions",
    metadata,
    _id(),
    Column("quiz_id", String(32), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False),
    Column("prompt", Text, nullable=False),
    Column("options", Text, nullable=False, server_default="[]"),
    Column("correct_answer", Text, nullable=False),
    Column("explanation", Text),
    Column("position", Integer, nullable=False, server_default="1"),
    _created(),
)

quiz_attempts = Table(
    "quiz_attempts",
    metadata,
    _id(),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("quiz_id", String(32), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False),
    Column("score", Integer, nullable=False),
    Column("passed", Integer, nullable=False, server_default="0"),
    Column("answers", Text, nullable=False, server_default="{}"),
    Column("time_spent", Integer),
    Column("completed_at", Text, nullable=False),
)

user_progress = Table(
    "user_progress",
    metadata,
    _id(),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("lesson_id", String(32), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False),
    Column("score", Integer),
    Column("time_spent", Integer),
    Column("completed_at", Text, nullable=False),
    UniqueConstraint("user_id", "lesson_id", name="uq_user_progress_lesson"),
)

srs_decks = Table(
    "srs_decks",
    metadata,
    _id(),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE")),
    Column("name", Text, nullable=False),
    Column("description", Text),
    _created(),
)

srs_deck_options = Table(
    "srs_deck_options",
    metadata,
    Column("deck_id", String(32), ForeignKey("srs_decks.id", ondelete="CASCADE"), primary_key=True),
    Column("new_per_day", Integer, nullable=False, server_default="10"),
    Column("reviews_per_day", Integer, nullable=False, server_default="50"),
    Column("learning_steps_minutes", Text, nullable=False, server_default="[10, 1440]"),
    Column("relearn_steps_minutes", Text, nullable=False, server_default="[10, 1440]"),
    Column("leech_threshold", Integer, nullable=False, server_default="8"),
    Column("bury_siblings", Integer, nullable=False, server_default="1"),
    Column("updated_at", BigInteger),
)

srs_cards = Table(
    "srs_cards",
    metadata,
    _id(),
    Column("deck_id", String(32), ForeignKey("srs_decks.id", ondelete="CASCADE"), nullable=False),
    Column("front", Text, nullable=False),
    Column("back", Text, nullable=False),
    Column("lesson_id", String(32), ForeignKey("lessons.id", ondelete="SET NULL")),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

srs_tags = Table(
    "srs_tags",
    metadata,
    _id(),
    Column("name", String(64), nullable=False, unique=True),
)

srs_card_tags = Table(
    "srs_card_tags",
    metadata,
    Column("card_id", String(32), ForeignKey("srs_cards.id", ondelete="CASCADE"), nullable=False),
    Column("tag_id", String(32), ForeignKey("srs_tags.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("card_id", "tag_id"),
)

srs_card_states = Table(
    "srs_card_states",
    metadata,
    Column("user_id", String(32), nullable=False),
    Column("card_id", String(32), ForeignKey("srs_cards.id", ondelete="CASCADE"), nullable=False),
    Column("deck_id", String(32), ForeignKey("srs_decks.id", ondelete="CASCADE"), nullable=False),
    Column("state", String(16), nullable=False, server_default="new"),
    Column("due_at", BigInteger, nullable=False),
    Column("interval_days", Integer, nullable=False, server_default="0"),
    Column("ease", Float, nullable=False, server_default="2.5"),
    Column("reps", Integer, nullable=False, server_default="0"),
    Column("lapses", Integer, nullable=False, server_default="0"),
    Column("suspended", Integer, nullable=False, server_default="0"),
    Column("last_reviewed_at", BigInteger),
    Column("updated_at", BigInteger, nullable=False),
    PrimaryKeyConstraint("user_id", "card_id"),
)

srs_review_events = Table(
    "srs_review_events",
    metadata,
    _id(),
    Column("user_id", String(32), nullable=False),
    Column("card_id", String(32), ForeignKey("srs_cards.id", ondelete="CASCADE"), nullable=False),
    Column("deck_id", String(32), nullable=False),
    Column("grade", Integer, nullable=False),
    Column("reviewed_at", BigInteger, nullable=False),
    Column("duration_ms", Integer),
    Column("prev_state", String(16), nullable=False),
    Column("next_state", String(16), nullable=False),
    Column("prev_due_at", BigInteger),
    Column("next_due_at", BigInteger, nullable=False),
    Column("prev_interval_days", Integer, nullable=False),
    Column("next_interval_days", Integer, nullable=False),
    Column("prev_ease", Float, nullable=False),
    Column("next_ease", Float, nullable=False),
)

equipment_types = Table(
    "equipment_types",
    metadata,
    _id(),
    Column("name", String(255), nullable=False, unique=True),
    Column("description", Text),
    Column("default_maintenance_interval", Integer),
    _created(),
)

equipment_items = Table(
    "equipment_items",
    metadata,
    _id(),
    Column("equipment_type_id", String(32), ForeignKey("equipment_types.id", ondelete="CASCADE"), nullable=False),
    Column("name", Text, nullable=False),
    Column("serial_number", Text),
    Column("manufacturer", Text),
    Column("model", Text),
    Column("purchase_date", Text),
    Column("location", Text),
    Column("status", String(32), nullable=False, server_default="OPERATIONAL"),
    Column("notes", Text),
    Column("last_maintained_at", Text),
    _created(),
    Column("updated_at", Text),
)

maintenance_schedules = Table(
    "maintenance_schedules",
    metadata,
    _id(),
    Column("equipment_item_id", String(32), ForeignKey("equipment_items.id", ondelete="CASCADE"), nullable=False),
    Column("name", Text, nullable=False),
    Column("interval_type", String(16), nullable=False),
    Column("interval_value", Integer, nullable=False, server_default="1"),
    Column("checklist", Text, nullable=False, server_default="[]"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    _created(),
)

maintenance_tasks = Table(
    "maintenance_tasks",
    metadata,
    _id(),
    Column("equipment_item_id", String(32), ForeignKey("equipment_items.id", ondelete="CASCADE"), nullable=False),
    Column("schedule_id", String(32), ForeignKey("maintenance_schedules.id", ondelete="SET NULL")),
    Column("title", Text, nullable=False),
    Column("scheduled_date", Text, nullable=False),
    Column("completed_date", Text),
    Column("status", String(16), nullable=False, server_default="SCHEDULED"),
    Column("assigned_to", Text),
    Column("notes", Text),
    _created(),
    Column("updated_at", Text),
)

maintenance_logs = Table(
    "maintenance_logs",
    metadata,
    _id(),
    Column("equipment_item_id", String(32), ForeignKey("equipment_items.id", ondelete="CASCADE"), nullable=False),
    Column("task_id", String(32), ForeignKey("maintenance_tasks.id", ondelete="SET NULL")),
    Column("performed_by", Text, nullable=False),
    Column("performed_date", Text, nullable=False),
    Column("checklist_results", Text, nullable=False, server_default="[]"),
    Column("parts_replaced", Text, nullable=False, server_default="[]"),
    Column("notes", Text),
    _created(),
)

equipment_use_logs = Table(
    "equipment_use_logs",
    metadata,
    _id(),
    Column("equipment_item_id", String(32), ForeignKey("equipment_items.id", ondelete="CASCADE"), nullable=False),
    Column("use_type", String(16), nullable=False),
    Column("used_by", Text, nullable=False),
    Column("use_date", Text, nullable=False),
    Column("condition", String(16), nullable=False),
    Column("defects", Text),
    Column("hours_used", Float),
    Column("location", Text),
    Column("notes", Text),
    _created(),
)

sponsors = Table(
    "sponsors",
    metadata,
    _id(),
    Column("company_name", Text, nullable=False),
    Column("contact_name", Text),
    Column("contact_email", Text, nullable=False),
    Column("category", Text),
    Column("tier", String(16), nullable=False, server_default="BRONZE"),
    Column("status", String(16), nullable=False, server_default="PENDING"),
    Column("monthly_fee", Integer, nullable=False, server_default="0"),
    Column("logo_url", Text),
    Column("landing_url", Text),
    Column("cta_text", Text),
    Column("description", Text),
    Column("start_date", Text),
    Column("end_date", Text),
    _created(),
    Column("updated_at", Text),
)

sponsor_placements = Table(
    "sponsor_placements",
    metadata,
    _id(),
    Column("sponsor_id", String(32), ForeignKey("sponsors.id", ondelete="CASCADE"), nullable=False),
    Column("placement_type", String(32), nullable=False),
    Column("position", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("start_date", Text),
    Column("end_date", Text),
    _created(),
)

sponsor_events = Table(
    "sponsor_events",
    metadata,
    _id(),
    Column("sponsor_id", String(32), ForeignKey("sponsors.id", ondelete="CASCADE"), nullable=False),
    Column("placement_id", String(32), ForeignKey("sponsor_placements.id", ondelete="SET NULL")),
    Column("event_type", String(16), nullable=False),
    Column("user_id", String(32)),
    Column("page", Text),
    Column("utm_source", Text),
    Column("utm_medium", Text),
    Column("utm_campaign", Text),
    Column("details", Text),
    _created(),
)

affiliates = Table(
    "affiliates",
    metadata,
    _id(),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("affiliate_code", String(16), nullable=False, unique=True),
    Column("name", Text),
    Column("email", Text),
    Column("commission_rate", Integer, nullable=False, server_default="50"),
    Column("total_referrals", Integer, nullable=False, server_default="0"),
    Column("total_earnings", Integer, nullable=False, server_default="0"),
    Column("monthly_earnings", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    _created(),
)

affiliate_clicks = Table(
    "affiliate_clicks",
    metadata,
    _id(),
    Column("affiliate_code", String(16), nullable=False),
    Column("visitor_id", Text),
    Column("ip_address", Text),
    Column("user_agent", Text),
    Column("referrer", Text),
    Column("landing_page", Text),
    Column("converted", Integer, nullable=False, server_default="0"),
    Column("converted_user_id", String(32)),
    _created(),
)

referrals = Table(
    "referrals",
    metadata,
    _id(),
    Column("affiliate_code", String(16), nullable=False),
    Column("referred_user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("subscription_type", String(32), nullable=False),
    Column("monthly_value", Integer, nullable=False),
    Column("commission_earned", Integer, nullable=False),
    Column("status", String(16), nullable=False, server_default="ACTIVE"),
    _created(),
)

# Provider event ids already applied; retried deliveries are acknowledged without effect.
webhook_events = Table(
    "webhook_events",
    metadata,
    Column("provider", String(16), nullable=False),
    Column("event_id", String(128), nullable=False),
    Column("user_id", String(32)),
    Column("received_at", Text, nullable=False),
    PrimaryKeyConstraint("provider", "event_id"),
)

Index("idx_lessons_track_position", lessons.c.track_id, lessons.c.position)
Index("idx_questions_quiz", questions.c.quiz_id, questions.c.position)
Index("idx_srs_states_due", srs_card_states.c.user_id, srs_card_states.c.deck_id, srs_card_states.c.due_at)
Index("idx_srs_events_user_time", srs_review_events.c.user_id, srs_review_events.c.reviewed_at)
Index("idx_maintenance_tasks_status", maintenance_tasks.c.status, maintenance_tasks.c.scheduled_date)
Index("idx_use_logs_item", equipment_use_logs.c.equipment_item_id, equipment_use_logs.c.use_date)
Index("idx_sponsor_events_sponsor", sponsor_events.c.sponsor_id, sponsor_events.c.created_at)
Index("idx_affiliate_clicks_code", affiliate_clicks.c.affiliate_code)

# Columns added after the first release; init_db adds them to older databases.
LATE_COLUMNS = {
    "lessons": {
        "podcast_url": "TEXT",
        "podcast_duration": "INTEGER",
        "pdf_url": "TEXT",
    },
    "equipment_items": {
        "last_maintained_at": "TEXT",
    },
}

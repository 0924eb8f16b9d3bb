"""create classshift schema

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "academic_affairs", "teacher", "student", name="user_role")
resource_type_enum = sa.Enum("room", "virtual", name="resource_type")
class_modality_enum = sa.Enum("offline", "online", "hybrid", name="class_modality")
session_status_enum = sa.Enum("planned", "done", "cancelled", name="session_status")
assignment_status_enum = sa.Enum("scheduled", "on_leave", "substituted", name="teaching_assignment_status")
attendance_status_enum = sa.Enum("planned", "present", "absent", name="attendance_status")
change_request_type_enum = sa.Enum("reschedule", "swap", "modality_change", name="change_request_type")
change_request_status_enum = sa.Enum(
    "pending", "waiting_confirm", "approved", "rejected", name="change_request_status"
)
notification_type_enum = sa.Enum("schedule", "workflow", "system", name="notification_type")

ENUMS = (
    user_role_enum,
    resource_type_enum,
    class_modality_enum,
    session_status_enum,
    assignment_status_enum,
    attendance_status_enum,
    change_request_type_enum,
    change_request_status_enum,
    notification_type_enum,
)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "branches",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_branches_code", "branches", ["code"], unique=True)

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("employee_code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("skills", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_teachers_user_id", "teachers", ["user_id"], unique=True)

    op.create_table(
        "resources",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("branch_id", sa.String(length=36), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("resource_type", resource_type_enum, nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("meeting_url", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("branch_id", "code", name="uq_resource_branch_code"),
    )
    op.create_index("ix_resources_branch_id", "resources", ["branch_id"])

    op.create_table(
        "time_slot_templates",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("branch_id", sa.String(length=36), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_time_slot_templates_branch_id", "time_slot_templates", ["branch_id"])

    op.create_table(
        "training_classes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("branch_id", sa.String(length=36), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("subject_code", sa.String(length=50), nullable=True),
        sa.Column("modality", class_modality_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_training_classes_branch_id", "training_classes", ["branch_id"])
    op.create_index("ix_training_classes_code", "training_classes", ["code"], unique=True)

    op.create_table(
        "class_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_id", sa.String(length=36), sa.ForeignKey("training_classes.id"), nullable=False),
        sa.Column("time_slot_id", sa.String(length=36), sa.ForeignKey("time_slot_templates.id"), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        sa.Column("topic", sa.String(length=300), nullable=True),
        sa.Column("teacher_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_class_sessions_class_id", "class_sessions", ["class_id"])
    op.create_index("ix_class_sessions_session_date", "class_sessions", ["session_date"])
    op.create_index("ix_class_sessions_status", "class_sessions", ["status"])

    op.create_table(
        "session_resources",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), sa.ForeignKey("class_sessions.id"), nullable=False),
        sa.Column("resource_id", sa.String(length=36), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("time_slot_id", sa.String(length=36), sa.ForeignKey("time_slot_templates.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_session_resources_session_id", "session_resources", ["session_id"])
    op.create_index("ix_session_resources_resource_id", "session_resources", ["resource_id"])
    op.create_index(
        "uq_session_resources_active_slot",
        "session_resources",
        ["resource_id", "session_date", "time_slot_id"],
        unique=True,
        postgresql_where=sa.text("is_active = true"),
        sqlite_where=sa.text("is_active = 1"),
    )
    op.create_index(
        "uq_session_resources_active_session",
        "session_resources",
        ["session_id"],
        unique=True,
        postgresql_where=sa.text("is_active = true"),
        sqlite_where=sa.text("is_active = 1"),
    )

    op.create_table(
        "teaching_assignments",
        sa.Column("session_id", sa.String(length=36), sa.ForeignKey("class_sessions.id"), primary_key=True),
        sa.Column("teacher_id", sa.String(length=36), sa.ForeignKey("teachers.id"), primary_key=True),
        sa.Column("status", assignment_status_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_teaching_assignments_teacher_id", "teaching_assignments", ["teacher_id"])

    op.create_table(
        "student_sessions",
        sa.Column("session_id", sa.String(length=36), sa.ForeignKey("class_sessions.id"), primary_key=True),
        sa.Column("student_id", sa.String(length=36), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("attendance_status", attendance_status_enum, nullable=False),
        sa.Column("is_makeup", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_student_sessions_student_id", "student_sessions", ["student_id"])

    op.create_table(
        "change_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("teacher_id", sa.String(length=36), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("session_id", sa.String(length=36), sa.ForeignKey("class_sessions.id"), nullable=False),
        sa.Column("request_type", change_request_type_enum, nullable=False),
        sa.Column("status", change_request_status_enum, nullable=False),
        sa.Column("request_reason", sa.Text(), nullable=True),
        sa.Column("new_date", sa.Date(), nullable=True),
        sa.Column("new_time_slot_id", sa.String(length=36), sa.ForeignKey("time_slot_templates.id"), nullable=True),
        sa.Column("new_resource_id", sa.String(length=36), sa.ForeignKey("resources.id"), nullable=True),
        sa.Column("replacement_teacher_id", sa.String(length=36), sa.ForeignKey("teachers.id"), nullable=True),
        sa.Column("new_session_id", sa.String(length=36), sa.ForeignKey("class_sessions.id"), nullable=True),
        sa.Column("submitted_by_id", sa.String(length=36), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_by_id", sa.String(length=36), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "request_type != 'swap' OR "
            "(new_date IS NULL AND new_time_slot_id IS NULL AND new_resource_id IS NULL)",
            name="ck_change_requests_swap_payload",
        ),
        sa.CheckConstraint(
            "request_type != 'modality_change' OR "
            "(new_date IS NULL AND new_time_slot_id IS NULL AND replacement_teacher_id IS NULL)",
            name="ck_change_requests_modality_payload",
        ),
        sa.CheckConstraint(
            "request_type != 'reschedule' OR replacement_teacher_id IS NULL",
            name="ck_change_requests_reschedule_payload",
        ),
    )
    op.create_index("ix_change_requests_teacher_id", "change_requests", ["teacher_id"])
    op.create_index("ix_change_requests_session_id", "change_requests", ["session_id"])
    op.create_index("ix_change_requests_status", "change_requests", ["status"])
    op.create_index("ix_change_requests_replacement_teacher_id", "change_requests", ["replacement_teacher_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type_enum, nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_entity", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_change_requests_replacement_teacher_id", table_name="change_requests")
    op.drop_index("ix_change_requests_status", table_name="change_requests")
    op.drop_index("ix_change_requests_session_id", table_name="change_requests")
    op.drop_index("ix_change_requests_teacher_id", table_name="change_requests")
    op.drop_table("change_requests")
    op.drop_index("ix_student_sessions_student_id", table_name="student_sessions")
    op.drop_table("student_sessions")
    op.drop_index("ix_teaching_assignments_teacher_id", table_name="teaching_assignments")
    op.drop_table("teaching_assignments")
    op.drop_index("uq_session_resources_active_session", table_name="session_resources")
    op.drop_index("uq_session_resources_active_slot", table_name="session_resources")
    op.drop_index("ix_session_resources_resource_id", table_name="session_resources")
    op.drop_index("ix_session_resources_session_id", table_name="session_resources")
    op.drop_table("session_resources")
    op.drop_index("ix_class_sessions_status", table_name="class_sessions")
    op.drop_index("ix_class_sessions_session_date", table_name="class_sessions")
    op.drop_index("ix_class_sessions_class_id", table_name="class_sessions")
    op.drop_table("class_sessions")
    op.drop_index("ix_training_classes_code", table_name="training_classes")
    op.drop_index("ix_training_classes_branch_id", table_name="training_classes")
    op.drop_table("training_classes")
    op.drop_index("ix_time_slot_templates_branch_id", table_name="time_slot_templates")
    op.drop_table("time_slot_templates")
    op.drop_index("ix_resources_branch_id", table_name="resources")
    op.drop_table("resources")
    op.drop_index("ix_teachers_user_id", table_name="teachers")
    op.drop_table("teachers")
    op.drop_index("ix_branches_code", table_name="branches")
    op.drop_table("branches")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    bind = op.get_bind()
    for enum in ENUMS:
        enum.drop(bind, checkfirst=True)

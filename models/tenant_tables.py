"""
Per-Tenant Relations

Every gym gets its own database schema named after its domain. The tables
below are declared once against the placeholder schema ``TENANT_SCHEMA`` and
rebound to a concrete tenant at execution time with SQLAlchemy's
``schema_translate_map``, so the dialect quotes every schema reference.

Example:
    >>> from models.tenant_tables import tenant_metadata, for_tenant
    >>> async with engine.begin() as conn:
    ...     conn = await for_tenant(conn, "iron-gym")
    ...     await conn.run_sync(tenant_metadata.create_all)
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    true,
)

from models.identity import new_id

# Placeholder schema; replaced by the tenant's domain via schema_translate_map
TENANT_SCHEMA = "tenant"

tenant_metadata = MetaData(schema=TENANT_SCHEMA)


def _in(column: str, values) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


DIFFICULTY_LEVELS = ("beginner", "intermediate", "advanced")


tenant_user = Table(
    "user",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("username", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False),
    Column("verification_status", String(20), nullable=False, server_default="unverified"),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("description", Text),
    Column("training_phase", Text),
    Column("motivation", Text),
    Column("special_situation", Text),
    Column("last_login_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("username", name="uq_user_username"),
    UniqueConstraint("email", name="uq_user_email"),
    CheckConstraint(_in("role", ("admin", "user", "guest")), name="ck_user_role"),
    CheckConstraint(
        _in("verification_status", ("verified", "unverified", "demo")),
        name="ck_user_verification_status",
    ),
    CheckConstraint(
        _in("training_phase", ("weight_loss", "muscle_gain", "cardio_improve", "maintenance")),
        name="ck_user_training_phase",
    ),
    CheckConstraint(
        _in("motivation", (
            "medical_recommendation", "self_improvement", "competition",
            "rehabilitation", "wellbeing",
        )),
        name="ck_user_motivation",
    ),
    CheckConstraint(
        _in("special_situation", (
            "pregnancy", "post_partum", "injury_recovery", "chronic_condition",
            "elderly_population", "physical_limitation", "none",
        )),
        name="ck_user_special_situation",
    ),
)


custom_exercise = Table(
    "custom_exercise",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("created_by", String(36), nullable=False),
    Column("name", Text, nullable=False),
    Column("synonyms", Text, nullable=False),
    Column("difficulty_level", Text, nullable=False),
    Column("exercise_type", Text, nullable=False),
    Column("instructions", Text, nullable=False),
    Column("video_url", Text),
    Column("image_url", Text),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    CheckConstraint(_in("difficulty_level", DIFFICULTY_LEVELS), name="ck_custom_exercise_difficulty"),
    CheckConstraint(
        _in("exercise_type", ("strength", "cardio", "flexibility", "balance", "functional")),
        name="ck_custom_exercise_type",
    ),
    Index("idx_custom_exercise_active", "is_active"),
    Index("idx_custom_exercise_type", "exercise_type"),
    Index("idx_custom_exercise_difficulty", "difficulty_level"),
)


# Muscular groups and equipment live in the public catalogue; the link tables
# hold their ids without a cross-schema foreign key.
custom_exercise_muscular_group = Table(
    "custom_exercise_muscular_group",
    tenant_metadata,
    Column(
        "custom_exercise_id",
        String(36),
        ForeignKey(f"{TENANT_SCHEMA}.custom_exercise.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("muscular_group_id", String(36), nullable=False),
    PrimaryKeyConstraint("custom_exercise_id", "muscular_group_id"),
)


custom_exercise_equipment = Table(
    "custom_exercise_equipment",
    tenant_metadata,
    Column(
        "custom_exercise_id",
        String(36),
        ForeignKey(f"{TENANT_SCHEMA}.custom_exercise.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("equipment_id", String(36), nullable=False),
    PrimaryKeyConstraint("custom_exercise_id", "equipment_id"),
)


custom_equipment = Table(
    "custom_equipment",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("created_by", String(36), nullable=False),
    Column("name", Text, nullable=False),
    Column("description", Text),
    Column("category", Text, nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    CheckConstraint(
        _in("category", ("free_weights", "machines", "cardio", "accessories", "bodyweight", "custom")),
        name="ck_custom_equipment_category",
    ),
    Index("idx_custom_equipment_active", "is_active"),
    Index("idx_custom_equipment_category", "category"),
)


custom_workout_template = Table(
    "custom_workout_template",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("created_by", String(36), nullable=False),
    Column("name", Text, nullable=False),
    Column("description", Text),
    Column("difficulty_level", Text, nullable=False),
    Column("estimated_duration_minutes", Integer),
    Column("target_audience", Text, nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    CheckConstraint(_in("difficulty_level", DIFFICULTY_LEVELS), name="ck_custom_workout_template_difficulty"),
    CheckConstraint(
        _in("target_audience", (
            "weight_loss", "muscle_building", "endurance", "strength",
            "flexibility", "general_fitness", "rehabilitation",
        )),
        name="ck_custom_workout_template_audience",
    ),
    Index("idx_custom_workout_template_active", "is_active"),
    Index("idx_custom_workout_template_difficulty", "difficulty_level"),
)


custom_template_block = Table(
    "custom_template_block",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("created_by", String(36), nullable=False),
    Column(
        "template_id",
        String(36),
        ForeignKey(f"{TENANT_SCHEMA}.custom_workout_template.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("block_name", Text, nullable=False),
    Column("block_type", Text, nullable=False),
    Column("block_order", Integer, nullable=False),
    Column("exercise_count", Integer, nullable=False),
    Column("estimated_duration_minutes", Integer),
    Column("instructions", Text),
    CheckConstraint(
        _in("block_type", ("warmup", "main", "core", "cardio", "cooldown", "custom")),
        name="ck_custom_template_block_type",
    ),
    Index("idx_custom_template_block_template", "template_id"),
    Index("idx_custom_template_block_order", "template_id", "block_order"),
)


custom_workout_instance = Table(
    "custom_workout_instance",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("created_by", String(36), nullable=False),
    Column("name", Text, nullable=False),
    Column("description", Text),
    Column("template_source", Text, nullable=False),
    Column("public_template_id", String(36)),
    Column("gym_template_id", String(36)),
    Column("difficulty_level", Text, nullable=False),
    Column("estimated_duration_minutes", Integer),
    CheckConstraint(_in("template_source", ("public", "gym")), name="ck_custom_workout_instance_source"),
    CheckConstraint(_in("difficulty_level", DIFFICULTY_LEVELS), name="ck_custom_workout_instance_difficulty"),
    Index("idx_custom_workout_instance_public_template", "public_template_id"),
    Index("idx_custom_workout_instance_gym_template", "gym_template_id"),
)


custom_workout_exercise = Table(
    "custom_workout_exercise",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("created_by", String(36), nullable=False),
    Column(
        "workout_instance_id",
        String(36),
        ForeignKey(f"{TENANT_SCHEMA}.custom_workout_instance.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("exercise_source", Text, nullable=False),
    Column("public_exercise_id", String(36)),
    Column("gym_exercise_id", String(36)),
    Column("block_name", Text, nullable=False),
    Column("exercise_order", Integer, nullable=False),
    Column("sets", Integer),
    Column("reps_min", Integer),
    Column("reps_max", Integer),
    Column("weight_kg", Numeric(5, 2)),
    Column("duration_seconds", Integer),
    Column("rest_seconds", Integer),
    Column("notes", Text),
    CheckConstraint(_in("exercise_source", ("public", "gym")), name="ck_custom_workout_exercise_source"),
    CheckConstraint(
        "(exercise_source = 'public' AND public_exercise_id IS NOT NULL AND gym_exercise_id IS NULL) OR "
        "(exercise_source = 'gym' AND gym_exercise_id IS NOT NULL AND public_exercise_id IS NULL)",
        name="ck_custom_workout_exercise_reference",
    ),
    UniqueConstraint(
        "workout_instance_id", "block_name", "exercise_order",
        name="uq_custom_workout_exercise_position",
    ),
    Index("idx_custom_workout_exercise_instance", "workout_instance_id"),
    Index("idx_custom_workout_exercise_public", "public_exercise_id"),
    Index("idx_custom_workout_exercise_gym", "gym_exercise_id"),
    Index("idx_custom_workout_exercise_block", "workout_instance_id", "block_name"),
)


custom_member_workout = Table(
    "custom_member_workout",
    tenant_metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("created_by", String(36), nullable=False),
    Column("member_id", String(36), nullable=False),
    Column(
        "workout_instance_id",
        String(36),
        ForeignKey(f"{TENANT_SCHEMA}.custom_workout_instance.id"),
        nullable=False,
    ),
    Column("scheduled_date", Date),
    Column("started_at", DateTime(timezone=True)),
    Column("completed_at", DateTime(timezone=True)),
    Column("status", Text, nullable=False),
    Column("notes", Text),
    Column("rating", Integer),
    CheckConstraint(
        _in("status", ("scheduled", "in_progress", "completed", "skipped", "cancelled")),
        name="ck_custom_member_workout_status",
    ),
    CheckConstraint("rating >= 1 AND rating <= 5", name="ck_custom_member_workout_rating"),
    Index("idx_custom_member_workout_member", "member_id"),
    Index("idx_custom_member_workout_instance", "workout_instance_id"),
    Index("idx_custom_member_workout_status", "status"),
    Index("idx_custom_member_workout_date", "scheduled_date"),
)


TENANT_TABLES = tuple(tenant_metadata.sorted_tables)


async def for_tenant(connection, domain: str):
    """Rebind ``connection`` so tenant tables resolve to schema ``domain``.

    The domain must already be validated; it is passed to the dialect as a
    schema identifier and quoted there.
    """
    return await connection.execution_options(schema_translate_map={TENANT_SCHEMA: domain})

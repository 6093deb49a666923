"""Infrastructure-related constants, particularly for the database."""

# asyncpg per-statement timeout
COMMAND_TIMEOUT_SECONDS = 60

# Naming convention for constraints to ensure consistency
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

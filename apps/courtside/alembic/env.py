"""
Alembic environment configuration for async migrations.

Standard Alembic entry point for CLI commands (alembic upgrade, etc.); also
importable so migrations can be run programmatically.
"""

from logging.config import fileConfig
import asyncio
import logging
import os
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context, config as alembic_config, command

# Import all models so Alembic can detect them
from courtside.database.db import Base, DATABASE_URL
from courtside.database import models  # noqa: F401

logger = logging.getLogger(__name__)

# Only available when run by Alembic CLI (not when imported programmatically)
config = None
try:
    config = context.config
    if config.config_file_name is not None:
        fileConfig(config.config_file_name)
except AttributeError:
    pass

# Metadata for autogenerate support
target_metadata = Base.metadata


def run_migrations_offline(alembic_cfg=None) -> None:
    """Run migrations in 'offline' mode (generates SQL without connecting).

    Args:
        alembic_cfg: Optional Alembic Config object. If not provided, uses context.config.
    """
    config_obj = alembic_cfg if alembic_cfg is not None else config
    if config_obj is None:
        raise ValueError("Alembic config is required for offline migrations")
    url = config_obj.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Execute migrations using the provided connection."""
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations(alembic_cfg=None) -> None:
    """Run migrations in async mode."""
    config_obj = alembic_cfg if alembic_cfg is not None else config
    if config_obj is None:
        raise ValueError("Alembic config is required for async migrations")

    # Override sqlalchemy.url with our async URL
    configuration = config_obj.get_section(config_obj.config_ini_section)
    configuration["sqlalchemy.url"] = DATABASE_URL

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    try:
        logger.info("Executing migrations...")
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
        logger.info("Migrations executed successfully")
    except Exception as e:
        logger.error(f"Error during migration execution: {e}", exc_info=True)
        raise
    finally:
        await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode (called by Alembic CLI)."""
    logger.info(
        f"Database URL: {DATABASE_URL.split('@')[1] if '@' in DATABASE_URL else 'configured'}"
    )
    try:
        asyncio.run(run_async_migrations())
        logger.info("✓ Migrations completed successfully")
    except Exception as e:
        logger.error(f"✗ Migration failed: {e}", exc_info=True)
        raise


async def run_migrations_online_programmatic() -> None:
    """Run migrations programmatically via Alembic's command API.

    Raises exceptions if migrations fail.
    """
    # alembic.ini sits next to the alembic/ directory
    package_dir = Path(__file__).parent.parent
    alembic_ini_path = package_dir / "alembic.ini"

    if not alembic_ini_path.exists():
        raise FileNotFoundError(f"Alembic config file not found: {alembic_ini_path}")

    alembic_cfg = alembic_config.Config(str(alembic_ini_path))
    alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)

    # command.upgrade is sync and resolves script_location relative to cwd
    original_cwd = os.getcwd()
    try:
        os.chdir(str(package_dir))

        def run_upgrade():
            command.upgrade(alembic_cfg, "head")

        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor() as executor:
            await loop.run_in_executor(executor, run_upgrade)
    except Exception as e:
        logger.error(f"Failed to run migrations: {e}", exc_info=True)
        raise
    finally:
        os.chdir(original_cwd)


# Alembic CLI entry point: only runs when config is set
if config is not None:
    try:
        if context.is_offline_mode():
            run_migrations_offline()
        else:
            run_migrations_online()
    except AttributeError:
        pass

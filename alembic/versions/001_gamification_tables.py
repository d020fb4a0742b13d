"""Gamification tables.

Creates achievements, gamification_profiles, user_achievements and xp_ledger.
The marketplace tables they reference (users, bookings, reviews, ...) are
owned by the booking application and must already exist.

Revision ID: 001_gamification_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Achievement catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) UNIQUE NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            icon_url VARCHAR(256),
            category VARCHAR(32) NOT NULL,
            points_reward INTEGER NOT NULL DEFAULT 0,
            criteria TEXT
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_achievements_category
        ON achievements(category)
    """)

    # --- Profiles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS gamification_profiles (
            id SERIAL PRIMARY KEY,
            user_id INTEGER UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            experience_points INTEGER NOT NULL DEFAULT 0 CHECK (experience_points >= 0),
            level INTEGER NOT NULL DEFAULT 1 CHECK (level >= 1),
            current_rank VARCHAR(32) NOT NULL DEFAULT 'Beginner',
            streak_count INTEGER NOT NULL DEFAULT 0,
            last_activity_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            version INTEGER NOT NULL DEFAULT 1
        )
    """)

    # --- Earned achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            profile_id INTEGER NOT NULL REFERENCES gamification_profiles(id) ON DELETE CASCADE,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            progress INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT user_achievements_profile_achievement_key UNIQUE (profile_id, achievement_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_achievements_user
        ON user_achievements(user_id, earned_at DESC)
    """)

    # --- XP Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            activity_type VARCHAR(64) NOT NULL,
            description VARCHAR(256),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_ledger_user
        ON xp_ledger(user_id, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS gamification_profiles CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")

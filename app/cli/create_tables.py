# app/cli/create_tables.py
import asyncio
import click

from app.database import Base, build_engine

# Import the models so they're registered with the Base
from app import models  # noqa: F401


@click.command()
@click.option('--echo', is_flag=True, help='Echo the generated SQL')
def create_tables(echo):
    """Create all database tables directly using SQLAlchemy (alembic is preferred outside development)"""

    async def _create_tables():
        engine = build_engine(echo=echo)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()
        click.echo("All tables created successfully!")

    asyncio.run(_create_tables())


if __name__ == "__main__":
    create_tables()

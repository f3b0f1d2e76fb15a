"""asyncpg repositories, one per aggregate."""

"""ORM tables, enums and Pydantic schemas."""

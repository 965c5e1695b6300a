"""FastAPI backend for the bike-share analytics translator.

Architecture:
- API routes: question translation + execution, schema introspection, reference questions
- Models: Pydantic schemas (API contracts)
- Dependencies: data store, schema catalog and translator singletons
"""

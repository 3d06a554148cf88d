"""
Dokasah backend package.

A FastAPI service that assigns form templates to owners, stores their
submissions, and lists the attachment folders kept in object storage.
"""

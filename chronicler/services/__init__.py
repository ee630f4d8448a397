"""Application services and in-memory collaborator implementations."""

"""cloud-init payload models and the user-data assembler."""

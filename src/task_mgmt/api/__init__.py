"""HTTP surface embedding the task lifecycle."""

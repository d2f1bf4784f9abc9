# Task board: column ordering, optimistic sync, and persistence
#
# Components:
#   schema.py     - Data model (Task, Milestone, TaskStatus, TaskPatch, COLUMNS)
#   ordering.py   - Pure ordering engine (moves, reorders, bulk sweeps)
#   store.py      - In-memory task/milestone stores with subscribers
#   sync.py       - Optimistic updates against a repository, reconcile on failure
#   repository.py - SQLite persistence (server side)
#   client.py     - HTTP persistence client (requests)
#   transfer.py   - Import/export payloads
#   summary.py    - Daily/weekly summary inputs and HTTP generator
#   notify.py     - User-facing notification sink
#   config.py     - YAML + env configuration

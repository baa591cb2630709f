# Task board: column/task state engine with local persistence
#
# Components:
#   schema.py      - Data model (Task, Tier, TaskVariant, Preferences, BoardSnapshot)
#   repository.py  - In-memory board ownership and mutation primitives
#   reorder.py     - Drag-resolution events -> repository moves
#   projection.py  - Filter/sort display projection
#   store.py       - Key-value backends and the persistence bridge
#   service.py     - Mutation facade (create/edit/delete/move, preferences)
#   config.py      - YAML configuration

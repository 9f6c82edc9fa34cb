# Kanban boards persisted as Markdown files in a GitHub repository
#
# Components:
#   schema.py      - Data model (Board, Column, Card, ChecklistItem, CardChange)
#   markdown.py    - Deterministic frontmatter serializer and parser
#   github.py      - GitHub REST client (refs, contents, trees, commits)
#   commits.py     - Atomic multi-file commit with compare-and-swap ref update
#   transaction.py - Tagged outcomes and the bounded conflict retry
#   validation.py  - Identifier and field checks run before any write
#   store.py       - Board save/create transactions and board reads
#   events.py      - Fire-and-forget "content changed" dispatch
#   config.py      - YAML-backed runtime configuration
#   errors.py      - Exception types mapped to result kinds by the store
#   cli.py         - Command-line add/move/list over the store

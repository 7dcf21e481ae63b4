"""Vault memory pipeline — capture, staging, promotion, tiered recall, retention.

Layout:
    <vault>/
    ├── MEMORY.md                         # Long-term notes: Commitments / Lessons / Preferences
    ├── project_anchors/
    │   ├── WORKING_SET.md                # Locked rules + current focus
    │   ├── VAULT_INDEX.md
    │   ├── MEMORY_INBOX.md               # Staged candidates (M-YYYYMMDD-###)
    │   ├── COMMITMENTS.md                # Open/done follow-ups (C-YYYYMMDD-###)
    │   └── DECISIONS.md                  # Immutable decisions (D-YYYYMMDD-###)
    ├── memory/
    │   ├── 2026-02-18.md                 # Daily log (append-only)
    │   ├── tiers/{user,fact,episodic}/   # Tiered records, searched first
    │   └── transcripts/2026-02-18.jsonl  # Raw turns (hybrid capture)
    └── context/
        ├── promotion_ledger.jsonl        # One line per promotion
        └── manifests/2026-02-18.jsonl    # One line per recall decision
"""

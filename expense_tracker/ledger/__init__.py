"""
Ledger core: chronological ordering and running-balance maintenance.

  - ordering: the (date, created_at, id) key every component sorts by
  - engine:   in-memory suffix shifts for insert / update / delete
  - store:    loading and saving a user's ordered ledger
"""

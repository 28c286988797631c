"""
Policies & SOPs module.

- Documents (Policy/SOP) belong to a department and carry a review cycle
  (last_review / next_review) plus an optional file attachment
- All reads and writes go through a Gateway (SQL or REST backend)
- Each signed-in user gets a DocumentStore: a snapshot of documents and
  departments that is re-fetched in full after every mutation
"""

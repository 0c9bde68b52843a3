"""
Proposal builder.

- Proposals are numbered PROP-<n> from a single-row counter starting at 1000
- Line items snapshot catalog data; catalog edits never rewrite a proposal
- Only DRAFT proposals can be revised (each revision bumps ``version``)
- PDF export is rendered server-side
"""

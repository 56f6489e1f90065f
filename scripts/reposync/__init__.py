"""Repository metadata sync across source-code hosting providers.

Walks GitHub organisations, GitLab group trees and Bitbucket workspaces,
normalises each provider's container hierarchy into a common group path,
and upserts the results into one PostgreSQL table.
"""

"""
AWS CDK Infrastructure for the resource initializer.

Defines an Aurora PostgreSQL cluster and the deploy-time initializer
function that prepares it.
"""

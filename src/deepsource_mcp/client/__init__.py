"""DeepSource GraphQL API client wired to the retry executor."""

from deepsource_mcp.client.graphql_client import DeepSourceGraphQLClient

__all__ = ["DeepSourceGraphQLClient"]

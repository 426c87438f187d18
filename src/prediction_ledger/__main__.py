"""Entry point for the prediction-ledger MCP server."""

from prediction_ledger.server import create_server


def main() -> None:
    """Run the prediction-ledger MCP server."""
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()

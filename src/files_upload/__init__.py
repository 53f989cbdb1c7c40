"""
Files Upload MCP Server

An MCP server that uploads local files and folder trees into a remote Files
service, with bounded concurrency and live per-folder progress.
"""

from .upload_manager import UploadManager, upload_manager


def main():
    """Main entry point for the package."""
    from .client import logger
    from .server import mcp

    logger.info("Starting Files upload MCP server...")
    mcp.run()


__all__ = ["UploadManager", "main", "upload_manager"]

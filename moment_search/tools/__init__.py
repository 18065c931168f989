"""Tools package for the moment-search MCP server.

Tool implementations live in subpackages and are registered with the MCP
server in moment_search.server.

Example:
    # In moment_search/server.py
    from moment_search.tools.youtube.semantic import tools as semantic_tools

    @mcp.tool
    async def search_video(video_id: str, query: str) -> dict:
        '''Find matching moments in a video.'''
        return await semantic_tools.search_video_moments(video_id, query)
"""

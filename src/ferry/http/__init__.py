"""HTTP primitives — request, response, headers, query, blobs."""

"""Services around the image pipeline.

Short URLs, usage analytics and request rate limiting. None of these
take part in rendering; the HTTP layer calls them before or after the
pipeline runs.
"""

"""Resolve the acting staff member for an API request.

Authentication is handled upstream (reverse proxy / SSO). The proxy forwards
the authenticated identity in X-Staff-* headers; API clients and tests may
instead send an "actor" object in the JSON body.
"""

from flask import request

from periop.roles import Actor


def get_actor_from_request(data: dict | None = None) -> Actor:
    """Build the Actor for this request.

    Raises:
        ValidationError: if no usable identity or role was supplied
    """
    if request.headers.get("X-Staff-Id"):
        return Actor.from_dict({
            "id": request.headers.get("X-Staff-Id"),
            "role": request.headers.get("X-Staff-Role"),
            "name": request.headers.get("X-Staff-Name"),
        })
    return Actor.from_dict((data or {}).get("actor"))

"""Canned ACL helpers for objectsync.

Canned ACLs are opaque to the reconciliation engine: they are validated by
name, sent with writes, and never read back for diffing. The grant
expansion here is used by the in-memory transport to answer ``get_acl``
the way the remote store does.
"""

from typing import Any

# S3 predefined group URIs
ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
AUTHENTICATED_USERS_URI = "http://acs.amazonaws.com/groups/global/AuthenticatedUsers"
EC2_EXEC_URI = "http://acs.amazonaws.com/groups/global/AwsExecRead"

CANNED_ACLS = frozenset(
    {
        "private",
        "public-read",
        "public-read-write",
        "authenticated-read",
        "aws-exec-read",
        "bucket-owner-read",
        "bucket-owner-full-control",
    }
)


def _group_grant(uri: str, permission: str) -> dict[str, Any]:
    return {"grantee": {"type": "Group", "uri": uri}, "permission": permission}


def parse_canned_acl(acl_name: str, owner_id: str, bucket_owner_id: str = "") -> list[dict[str, Any]]:
    """Expand a canned ACL name into its list of grants.

    Args:
        acl_name: The canned ACL name.
        owner_id: Canonical user ID of the object owner.
        bucket_owner_id: Canonical user ID of the bucket owner, used by the
            ``bucket-owner-*`` ACLs. Defaults to the object owner.

    Returns:
        A list of grant dicts with ``grantee`` and ``permission`` keys.

    Raises:
        ValueError: If the canned ACL name is not recognized.
    """
    owner_grant = {
        "grantee": {"type": "CanonicalUser", "id": owner_id},
        "permission": "FULL_CONTROL",
    }
    grants = [owner_grant]
    bucket_owner_id = bucket_owner_id or owner_id

    if acl_name == "private":
        pass
    elif acl_name == "public-read":
        grants.append(_group_grant(ALL_USERS_URI, "READ"))
    elif acl_name == "public-read-write":
        grants.append(_group_grant(ALL_USERS_URI, "READ"))
        grants.append(_group_grant(ALL_USERS_URI, "WRITE"))
    elif acl_name == "authenticated-read":
        grants.append(_group_grant(AUTHENTICATED_USERS_URI, "READ"))
    elif acl_name == "aws-exec-read":
        grants.append(_group_grant(EC2_EXEC_URI, "READ"))
    elif acl_name in ("bucket-owner-read", "bucket-owner-full-control"):
        if bucket_owner_id != owner_id:
            permission = "READ" if acl_name == "bucket-owner-read" else "FULL_CONTROL"
            grants.append(
                {
                    "grantee": {"type": "CanonicalUser", "id": bucket_owner_id},
                    "permission": permission,
                }
            )
    else:
        raise ValueError(f"Unknown canned ACL: {acl_name}")

    return grants


def grant_permissions(grants: list[dict[str, Any]]) -> list[str]:
    """Return the sorted permission names of a grant list."""
    return sorted(grant["permission"] for grant in grants)

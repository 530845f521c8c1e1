"""
strata.github - Pull request comments.

Posts the deployment report to the pull request that triggered
the workflow. Inside GitHub Actions the repository and PR number
come from the runner environment:

    GITHUB_REPOSITORY   owner/repo
    GITHUB_EVENT_PATH   event payload (pull_request.number)
    GITHUB_REF          refs/pull/<n>/merge (fallback)
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

_PR_REF = re.compile(r"^refs/pull/(\d+)/")


class CommentError(Exception):
    """Raised when posting a PR comment fails."""
    pass


@dataclass(frozen=True)
class PullRequest:
    repository: str
    number: int


def pull_request_from_env() -> PullRequest | None:
    """Find the triggering pull request, if any."""
    repository = os.environ.get("GITHUB_REPOSITORY", "").strip()
    if not repository:
        return None

    event_path = os.environ.get("GITHUB_EVENT_PATH", "").strip()
    if event_path and os.path.exists(event_path):
        try:
            with open(event_path) as f:
                event = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Cannot read event payload %s: %s", event_path, e)
            event = {}
        number = (event.get("pull_request") or {}).get("number")
        if number:
            return PullRequest(repository=repository, number=int(number))

    match = _PR_REF.match(os.environ.get("GITHUB_REF", ""))
    if match:
        return PullRequest(repository=repository, number=int(match.group(1)))

    return None


def post_pr_comment(token: str, repository: str, number: int, body: str) -> str:
    """Post a comment on a pull request.

    Args:
        token: GitHub token with pull-requests: write
        repository: owner/repo
        number: Pull request number
        body: Markdown comment body

    Returns:
        The comment URL

    Raises:
        CommentError: If the API call fails
    """
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }

    try:
        response = requests.post(
            f"{GITHUB_API_URL}/repos/{repository}/issues/{number}/comments",
            headers=headers,
            json={"body": body},
            timeout=30,
        )
    except requests.RequestException as e:
        raise CommentError(f"GitHub API request failed: {e}") from e

    if response.status_code == 201:
        url = response.json().get("html_url", "")
        logger.info("Posted comment on %s#%s: %s", repository, number, url)
        return url
    elif response.status_code == 401:
        raise CommentError("Invalid GitHub token")
    elif response.status_code == 403:
        raise CommentError("Token lacks permission to comment on pull requests")
    elif response.status_code == 404:
        raise CommentError(f"Pull request not found: {repository}#{number}")
    else:
        raise CommentError(f"GitHub API error {response.status_code}: {response.text}")

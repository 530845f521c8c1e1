"""
strata.aws.session - boto3 session and client creation.

Credentials come from the boto3 chain (env key pair, profile,
GitHub OIDC via configure-aws-credentials). When a role ARN is
configured, it is assumed through STS first.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.exceptions import (
    ClientError,
    NoCredentialsError,
    NoRegionError,
    ProfileNotFound,
)

from strata.config import Settings
from strata.errors import AuthError, ConfigError

logger = logging.getLogger(__name__)

ROLE_SESSION_NAME = "strata-deploy"


def make_session(settings: Settings) -> boto3.Session:
    """Build a boto3 session for the configured region and identity."""
    try:
        session = boto3.Session(
            profile_name=settings.profile,
            region_name=settings.region,
        )
    except ProfileNotFound as e:
        raise ConfigError(str(e)) from e

    if not settings.role_arn:
        return session

    logger.info("Assuming role %s", settings.role_arn)
    try:
        sts = session.client("sts")
        response = sts.assume_role(
            RoleArn=settings.role_arn,
            RoleSessionName=ROLE_SESSION_NAME,
        )
    except NoCredentialsError as e:
        raise AuthError(f"No AWS credentials to assume {settings.role_arn}") from e
    except NoRegionError as e:
        raise ConfigError("No AWS region configured (set AWS_REGION or --region)") from e
    except ClientError as e:
        raise AuthError(
            f"Cannot assume role {settings.role_arn}: "
            f"{e.response['Error'].get('Message', e)}"
        ) from e

    creds = response["Credentials"]
    return boto3.Session(
        aws_access_key_id=creds["AccessKeyId"],
        aws_secret_access_key=creds["SecretAccessKey"],
        aws_session_token=creds["SessionToken"],
        region_name=session.region_name,
    )


def make_cloudformation_client(settings: Settings) -> Any:
    """Create a CloudFormation client."""
    session = make_session(settings)
    try:
        client = session.client("cloudformation")
    except NoRegionError as e:
        raise ConfigError("No AWS region configured (set AWS_REGION or --region)") from e
    logger.debug("Created cloudformation client in %s", client.meta.region_name)
    return client

"""
AWS Auto Scaling Group Discovery Module

This module turns an Auto Scaling Group (ASG) name into the list of hostnames of
its current members, which the bootstrap then substitutes into the Sync Gateway
configuration as the Couchbase server list.

Discovery Flow:
    1. Region: AWS_REGION, or the EC2 instance metadata service (IMDSv2)
    2. Capacity wait (optional): poll until the number of pending/running
       instances tagged with the ASG equals the group's DesiredCapacity
    3. Inventory: describe_instances filtered on the aws:autoscaling:groupName tag
    4. Hostname selection: PublicDnsName or PrivateDnsName per policy
    5. URL assembly: "http://host:port" entries joined with commas

Ordering:
    Hostnames are returned in the order the EC2 API reports them. The API does not
    guarantee an order, but nothing here re-sorts, so a single run is reproducible.

Error Handling Strategy:
    - Empty inventory or any empty selected hostname: EmptyDiscoveryResult.
      Partial results are never returned.
    - ClientError / BotoCoreError: logged and re-raised (fatal for the bootstrap)
    - Metadata service errors: logged and re-raised

IAM Permissions Required:
    - autoscaling:DescribeAutoScalingGroups
    - ec2:DescribeInstances

Example Usage:
    autoscaling, ec2 = build_aws_clients('us-east-1')
    wait_for_instances_in_asg('couchbase-asg', 'us-east-1', autoscaling, ec2)
    hostnames = list_hostnames('couchbase-asg', 'us-east-1', use_public=False, port=8091, ec2=ec2)
    build_cluster_url(hostnames)
    # 'http://ip-10-0-0-1.ec2.internal:8091,http://ip-10-0-0-2.ec2.internal:8091'

Dependencies: boto3, botocore, requests
"""

import os
import logging
import time
from dataclasses import dataclass
from typing import Optional, List, Tuple, Callable
import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from .errors import EmptyDiscoveryResult
from .structured_events import StructuredEventLogger, ActionResult

logger = logging.getLogger(os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP"))

# EC2 instance metadata service (IMDSv2)
METADATA_BASE = "http://169.254.169.254/latest"
METADATA_TOKEN_TTL_SECONDS = 21600
DEFAULT_METADATA_TIMEOUT = 5

# Tag AWS attaches to every instance launched by an Auto Scaling Group
ASG_NAME_TAG = "aws:autoscaling:groupName"
# Instances in these states count as ASG members
MEMBER_STATES = ["pending", "running"]

CLUSTER_URL_SCHEME = "http://"

DEFAULT_ASG_MAX_ATTEMPTS = 60
DEFAULT_ASG_INTERVAL = 5


@dataclass(frozen=True)
class InstanceRecord:
    """Hostnames of one EC2 instance; either may be empty."""
    instance_id: str
    public_hostname: str
    private_hostname: str


def get_instance_region(timeout: int = DEFAULT_METADATA_TIMEOUT) -> str:
    """
    Look up the region of the EC2 instance this process runs on.

    Requests an IMDSv2 session token first. If the token endpoint is not reachable
    (IMDSv1-only hosts), the region is requested without a token.

    Args:
        timeout (int): Timeout in seconds for each metadata request.

    Returns:
        str: Region name, e.g. "us-east-1".

    Raises:
        requests.exceptions.RequestException: If the metadata service cannot be
            reached or returns an error status.
    """
    headers = {}
    try:
        token_resp = requests.put(
            f"{METADATA_BASE}/api/token",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(METADATA_TOKEN_TTL_SECONDS)},
            timeout=timeout
        )
        token_resp.raise_for_status()
        headers["X-aws-ec2-metadata-token"] = token_resp.text
    except requests.exceptions.RequestException as e:
        logger.debug(f"IMDSv2 token unavailable, falling back to IMDSv1: {e}")

    try:
        resp = requests.get(f"{METADATA_BASE}/meta-data/placement/region", headers=headers, timeout=timeout)
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error(f"Could not determine AWS region from instance metadata: {e}")
        raise

    region = resp.text.strip()
    logger.info(f"Discovered AWS region from instance metadata: {region}")
    return region


def build_aws_clients(region: str) -> Tuple[object, object]:
    """
    Create the boto3 clients used for discovery.

    Returns:
        tuple: (autoscaling client, ec2 client) bound to ``region``.
    """
    if not region:
        raise ValueError("Region cannot be empty")
    logger.debug(f"Building boto3 autoscaling and ec2 clients for {region}")
    return (boto3.client("autoscaling", region_name=region),
            boto3.client("ec2", region_name=region))


def describe_asg_instances(asg_name: str, ec2) -> List[InstanceRecord]:
    """
    List the pending/running instances tagged as members of ``asg_name``.

    Pages through describe_instances and keeps the API's response order.
    """
    paginator = ec2.get_paginator("describe_instances")
    pages = paginator.paginate(Filters=[
        {"Name": f"tag:{ASG_NAME_TAG}", "Values": [asg_name]},
        {"Name": "instance-state-name", "Values": MEMBER_STATES},
    ])

    records = []
    for page in pages:
        for reservation in page.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                records.append(InstanceRecord(
                    instance_id=instance.get("InstanceId", ""),
                    public_hostname=instance.get("PublicDnsName") or "",
                    private_hostname=instance.get("PrivateDnsName") or "",
                ))
    return records


def get_desired_capacity(asg_name: str, region: str, autoscaling) -> int:
    """Return the DesiredCapacity of ``asg_name``, or raise EmptyDiscoveryResult if it does not exist."""
    response = autoscaling.describe_auto_scaling_groups(AutoScalingGroupNames=[asg_name])
    groups = response.get("AutoScalingGroups", [])
    if not groups:
        raise EmptyDiscoveryResult(asg_name, region, "Auto Scaling Group not found")
    return int(groups[0].get("DesiredCapacity", 0))


def wait_for_instances_in_asg(asg_name: str,
                              region: str,
                              autoscaling,
                              ec2,
                              max_attempts: int = DEFAULT_ASG_MAX_ATTEMPTS,
                              interval: float = DEFAULT_ASG_INTERVAL,
                              sleep: Callable[[float], None] = time.sleep) -> List[InstanceRecord]:
    """
    Block until the ASG's member count matches its desired capacity.

    Newly launched groups report fewer instances than desired for a while. Listing
    hostnames during that window would write a partial server list into the
    configuration, so discovery waits here first.

    Args:
        asg_name (str): Auto Scaling Group name.
        region (str): Region, used for error messages.
        autoscaling: boto3 autoscaling client.
        ec2: boto3 ec2 client.
        max_attempts (int): Number of membership checks before giving up.
        interval (float): Seconds between checks.
        sleep: Sleep function, replaceable in tests.

    Returns:
        List[InstanceRecord]: Members seen on the successful check.

    Raises:
        EmptyDiscoveryResult: If the group does not exist, has a desired capacity
            of zero, or never reaches its desired capacity.
        ClientError / BotoCoreError: On AWS API failures.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    try:
        desired = get_desired_capacity(asg_name, region, autoscaling)
        if desired == 0:
            raise EmptyDiscoveryResult(asg_name, region, "desired capacity is 0")

        for attempt in range(1, max_attempts + 1):
            records = describe_asg_instances(asg_name, ec2)
            if len(records) == desired:
                logger.info(f"ASG {asg_name} has all {desired} desired instances")
                return records

            logger.info(f"ASG {asg_name} has {len(records)} of {desired} desired instances "
                        f"(attempt {attempt}/{max_attempts})")
            if attempt < max_attempts:
                sleep(interval)

    except (ClientError, BotoCoreError) as e:
        logger.error(f"AWS API error waiting for instances in ASG {asg_name} ({region}): {e}")
        raise

    raise EmptyDiscoveryResult(asg_name, region,
                               f"desired capacity of {desired} not reached after {max_attempts} attempts")


def list_hostnames(asg_name: str,
                   region: str,
                   use_public: bool,
                   port: Optional[int] = None,
                   ec2=None,
                   structured_logger: Optional[StructuredEventLogger] = None) -> List[str]:
    """
    Return the hostnames of all members of ``asg_name``, in inventory order.

    Args:
        asg_name (str): Auto Scaling Group name.
        region (str): AWS region of the group.
        use_public (bool): Select PublicDnsName instead of PrivateDnsName.
        port (int, optional): When given, ":port" is appended to every hostname.
        ec2: boto3 ec2 client. Built for ``region`` when omitted.
        structured_logger (StructuredEventLogger, optional): Logger for structured events.

    Returns:
        List[str]: One entry per instance.

    Raises:
        EmptyDiscoveryResult: If no instances are found or any instance lacks the
            selected hostname (for example a public hostname on a private subnet).
        ClientError / BotoCoreError: On AWS API failures.
    """
    if not asg_name:
        raise ValueError("ASG name cannot be empty")

    start_time = time.time()
    field = "public" if use_public else "private"
    hostnames: List[str] = []
    error_message = None

    try:
        if ec2 is None:
            _, ec2 = build_aws_clients(region)

        logger.info(f"Looking up {field} hostnames for ASG {asg_name} in {region}")
        records = describe_asg_instances(asg_name, ec2)
        if not records:
            raise EmptyDiscoveryResult(asg_name, region, "no pending or running instances")

        selected = []
        for record in records:
            hostname = record.public_hostname if use_public else record.private_hostname
            if not hostname:
                raise EmptyDiscoveryResult(asg_name, region,
                                           f"instance {record.instance_id or 'unknown'} has no {field} hostname")
            selected.append(hostname if port is None else f"{hostname}:{port}")

        hostnames = selected
        logger.info(f"Found {len(hostnames)} hostnames for ASG {asg_name}: {', '.join(hostnames)}")
        return hostnames

    except EmptyDiscoveryResult as e:
        error_message = str(e)
        logger.error(error_message)
        raise
    except (ClientError, BotoCoreError) as e:
        error_message = str(e)
        logger.error(f"AWS API error listing instances of ASG {asg_name} ({region}): {e}")
        raise
    finally:
        if structured_logger:
            structured_logger.log_asg_discovery(
                asg_name=asg_name,
                region=region,
                hostnames=hostnames,
                result=ActionResult.FAILURE if error_message else ActionResult.SUCCESS,
                duration_ms=int((time.time() - start_time) * 1000),
                error_message=error_message
            )


def build_cluster_url(hostnames: List[str]) -> str:
    """
    Format hostnames as the comma-joined Couchbase server list Sync Gateway expects.

    Example:
        build_cluster_url(["a:8091", "b:8091"]) -> "http://a:8091,http://b:8091"
    """
    if not hostnames:
        raise ValueError("hostnames cannot be empty")
    return ",".join(f"{CLUSTER_URL_SCHEME}{hostname}" for hostname in hostnames)

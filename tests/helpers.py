"""Builders for compute API responses and errors used across tests."""

from botocore.exceptions import ClientError, WaiterError

WAITER_TIMEOUT = "Max attempts exceeded"
WAITER_FAILURE = (
    "Waiter encountered a terminal failure state: For expression "
    "\"Reservations[].Instances[].State.Name\" we matched expected path: "
    "\"terminated\" at least once"
)


def make_client_error(code: str, operation: str = "DescribeInstances") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} raised for testing"}},
        operation,
    )


def make_waiter_error(reason: str = WAITER_TIMEOUT) -> WaiterError:
    """Build the error the instance_running waiter raises."""
    return WaiterError(
        name="InstanceRunning", reason=reason, last_response={"Reservations": []}
    )


def make_instance(
    instance_id="i-abc123",
    state="running",
    image_id="img-1",
    instance_type="m1.small",
    subnet_id="subnet-1",
    **overrides,
):
    """Build a DescribeInstances instance entry."""
    instance = {
        "InstanceId": instance_id,
        "ImageId": image_id,
        "InstanceType": instance_type,
        "SubnetId": subnet_id,
        "State": {"Name": state},
        "Placement": {"AvailabilityZone": "cn-north-1a"},
        "PrivateIpAddress": "10.0.0.5",
        "PublicIpAddress": "",
        "SecurityGroups": [{"GroupId": "sg-default"}],
        "Tags": [],
        "BlockDeviceMappings": [{"DeviceName": "/dev/vda"}],
    }
    instance.update(overrides)
    return instance


def describe_response(*instances):
    """Wrap instances in a DescribeInstances response."""
    if not instances:
        return {"Reservations": []}
    return {"Reservations": [{"Instances": list(instances)}]}

from typing import Optional

import pulumi_digitalocean as do

from util.naming import with_suffix

DEFAULT_IP_RANGE = "10.77.0.0/16"

def ensure_vpc(*, name: str, region: str, ip_range: Optional[str] = None) -> do.Vpc:
    vpc_name = with_suffix(f"{name}-{region}", "vpc")
    return do.Vpc(
        vpc_name,
        name=vpc_name,
        region=region,
        ip_range=ip_range or DEFAULT_IP_RANGE,
        description=f"multicloud VPC for {name}",
    )

STACK_TAG = "aws:cloudformation:stack-name"
TAG_BATCH = 20


def stack_balancer_arns(elbv2, arns, stack_name):
    found = set()
    for start in range(0, len(arns), TAG_BATCH):
        response = elbv2.describe_tags(ResourceArns=arns[start:start + TAG_BATCH])
        for description in response["TagDescriptions"]:
            for tag in description["Tags"]:
                if tag["Key"] == STACK_TAG and tag["Value"] == stack_name:
                    found.add(description["ResourceArn"])
    return found


def check(ctx):
    elbv2 = ctx.client("elbv2")
    balancers = []
    for page in elbv2.get_paginator("describe_load_balancers").paginate():
        balancers.extend(page["LoadBalancers"])

    in_stack = stack_balancer_arns(elbv2, [lb["LoadBalancerArn"] for lb in balancers], ctx.stack_name)
    zones = {
        lb["LoadBalancerName"]: sorted(az["ZoneName"] for az in lb.get("AvailabilityZones", []))
        for lb in balancers
        if lb["LoadBalancerArn"] in in_stack
    }
    return {
        "implemented": any(len(names) >= 2 for names in zones.values()),
        "details": {"load_balancers": zones},
    }

ATTACHMENT_ORDER = {
    False: "Attached images, in order: current ROI crop, earlier ROI crop (if any), current full desktop.",
    True: "Attached images, in order: current ROI crop, earlier ROI crop (if any), current foreground window.",
}

def trigger_content(ts: str, decision: str, score: float, reasons: list[str], foreground_only: bool) -> str:
    return " ".join([
        f"Screen attention gate fired at {ts}.",
        "Judge what the user is doing from the attached images first, then decide whether a short reply is warranted.",
        ATTACHMENT_ORDER[foreground_only],
        f"Decision: {decision}; score: {score:.2f}.",
        f"Trigger reasons: {', '.join(reasons) or 'none'}.",
    ])

def companion_content(ts: str) -> str:
    return " ".join([
        f"Active companion check-in at {ts}.",
        "The screen has been stable for a while and the user looks idle.",
        "Offer one short, low-interruption remark based only on what is visible. Do not speculate.",
    ])

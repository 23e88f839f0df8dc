import json

FIELDS = ("subdomain", "cname", "service", "status", "confidence", "evidence", "ip", "response_time")
LINE_FIELDS = FIELDS[:6]


def to_records(findings) -> list[dict]:
    """Finding records with a stable field order."""
    records = []
    for f in findings:
        d = f.to_dict()
        records.append({k: d[k] for k in FIELDS})
    return records


def dumps_json(findings) -> str:
    return json.dumps(to_records(findings), ensure_ascii=False, indent=2)


def format_line(finding) -> str:
    d = finding.to_dict()
    return ",".join(str(d[k]) for k in LINE_FIELDS)


def write_json(findings, path: str):
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps_json(findings))


def write_lines(findings, path: str):
    """
    One comma-joined line per finding:
      subdomain,cname,service,status,confidence,evidence
    Fields are not quoted.
    """
    with open(path, "w", encoding="utf-8") as f:
        for finding in findings:
            f.write(format_line(finding) + "\n")

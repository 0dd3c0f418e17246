from jinja2 import Environment
import json
from typing import Any, Dict, List

HTML_TMPL = r"""
<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <title>Payments API Test Report</title>
  <style>
    body{font-family:Arial,Helvetica,sans-serif;margin:16px;color:#222}
    .summary{margin-bottom:20px;padding:12px;background:#f2f8ff;border:1px solid #cfe0ff}
    .suite{border:1px solid #ddd;margin-bottom:12px;border-radius:6px;overflow:hidden}
    .su-head{background:#eef6ff;padding:10px;cursor:pointer;display:flex;justify-content:space-between}
    .su-body{display:none;padding:10px;background:#fff}
    .step{padding:8px;border-top:1px solid #f0f0f0}
    .ok{color:green;font-weight:600}
    .fail{color:red;font-weight:700}
    .skip{color:#999}
    pre{background:#f7f7f7;padding:8px;border-radius:4px;overflow:auto}
    .meta{font-size:12px;color:#666}
    .badge{display:inline-block;padding:2px 8px;border-radius:12px;background:#ddd;margin-left:8px}
    ul.asserts{margin:4px 0 4px 16px;padding:0}
  </style>
</head>
<body>
  <h1>Payments API Test Report</h1>
  <div class="summary">
    <div>Total suites: {{ report.suites_total }}</div>
    <div>Suites: Passed {{ passed }}  Failed {{ failed }}</div>
    <div>Assertions: Passed {{ counts.passed }}  Failed {{ counts.failed }}  Skipped {{ counts.skipped }}</div>
  </div>

  {% for s in report.suites %}
  <div class="suite">
    <div class="su-head" onclick="toggle('su-{{ loop.index0 }}')">
      <div>
        <strong>{{ s.name }}</strong>
        {% if s.source %}<span class="meta">({{ s.source }})</span>{% endif %}
      </div>
      <div>
        <span class="badge">steps: {{ s.steps|length }}</span>
        {% if s.ok %}<span class="ok">PASSED</span>{% else %}<span class="fail">FAILED</span>{% endif %}
      </div>
    </div>
    <div id="su-{{ loop.index0 }}" class="su-body">
      {% for step in s.steps %}
      <div class="step">
        <div><strong>[{{ step.index }}] {{ step.name }}</strong>
           <span class="meta"> - {{ step.duration_ms }} ms</span>
        </div>
        <div class="meta">Request: {{ step.request.method }} {{ step.request.url }}</div>
        {% if step.request.body %}
        <div class="meta">Body: <pre>{{ step.request.body|tojson(indent=2) }}</pre></div>
        {% endif %}
        {% if step.response %}
        <div class="meta">Response: status {{ step.response.status_code }}</div>
        <div>Response: <pre>{{ step.response.text_snippet }}</pre></div>
        {% endif %}
        <ul class="asserts">
        {% for a in step.assertions %}
          <li>
            {% if a.skipped %}<span class="skip">SKIPPED</span>{% elif a.passed %}<span class="ok">PASS</span>{% else %}<span class="fail">FAIL</span>{% endif %}
            {{ a.name }}{% if a.message and not a.passed %} <span class="meta">({{ a.message }})</span>{% endif %}
          </li>
        {% endfor %}
        </ul>
        {% if step.extracted %}
        <div class="meta">Stored: {{ step.extracted|join(', ') }}</div>
        {% endif %}
      </div>
      {% endfor %}
    </div>
  </div>
  {% endfor %}

  <script>
    function toggle(id){
      var el = document.getElementById(id);
      if(!el) return;
      el.style.display = (el.style.display === 'none' || el.style.display === '') ? 'block' : 'none';
    }
  </script>
</body>
</html>
"""


def assertion_counts(report: Dict[str, Any]) -> Dict[str, int]:
    counts = {"passed": 0, "failed": 0, "skipped": 0}
    for s in report.get("suites", []):
        for st in s.get("steps", []):
            for a in st.get("assertions", []):
                if a.get("skipped"):
                    counts["skipped"] += 1
                elif a.get("passed"):
                    counts["passed"] += 1
                else:
                    counts["failed"] += 1
    return counts


def failed_assertions(report: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten every failed assertion into {suite, step_index, step_name, assertion, message, status_code}."""
    out = []
    for s in report.get("suites", []):
        for st in s.get("steps", []):
            for a in st.get("assertions", []):
                if a.get("passed"):
                    continue
                out.append({
                    "suite": s.get("name"),
                    "step_index": st.get("index"),
                    "step_name": st.get("name"),
                    "assertion": a.get("name"),
                    "message": a.get("message"),
                    "status_code": (st.get("response") or {}).get("status_code"),
                })
    return out


def print_summary(report: Dict[str, Any]):
    counts = assertion_counts(report)
    print("\n=== Summary ===")
    print(f"Suites executed: {report.get('suites_total', 0)}")
    print(f"Passed: {report.get('passed', 0)}")
    print(f"Failed: {report.get('failed', 0)}")
    print(f"Assertions: {counts['passed']} passed, {counts['failed']} failed, {counts['skipped']} skipped")

    failures = failed_assertions(report)
    if failures:
        print("\nFailures detail:")
        for f in failures:
            print(f"- Suite: {f['suite']}")
            print(f"  Step #{f['step_index']}: {f['step_name']}")
            print(f"  Assertion: {f['assertion']}")
            print(f"  Reason: {f['message']}")
            if f["status_code"] is not None:
                print(f"  HTTP status: {f['status_code']}")


def write_json_report(report: Dict[str, Any], out_path: str):
    with open(out_path, "w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2, ensure_ascii=False, default=str)


def generate_html_report(report: Dict[str, Any], out_path: str):
    """
    report: the detailed report structure produced by run_suites:
      {
        "suites_total": N, "passed": P, "failed": F,
        "suites": [ { "name":..., "source":..., "ok":..., "steps":[ {index,name,request,response,assertions,extracted,duration_ms} ] } ]
      }
    out_path: path to write HTML file
    """
    passed = sum(1 for s in report.get("suites", []) if s.get("ok"))
    failed = len(report.get("suites", [])) - passed

    tmpl = Environment(autoescape=True).from_string(HTML_TMPL)
    html = tmpl.render(report=report, passed=passed, failed=failed, counts=assertion_counts(report))
    with open(out_path, "w", encoding="utf-8") as fh:
        fh.write(html)

#!/usr/bin/env python3
"""Read-only dashboard over the resume cache. Set FINDER_CACHE to point it at a cache file."""
from flask import Flask, jsonify, render_template_string, request, Response
import os, io, csv

from resume_cache import load_cache
from results import CSV_HEADER, SORT_MODES, csv_row, sort_results

app = Flask(__name__)
app.config["CACHE_PATH"] = os.environ.get("FINDER_CACHE", "checked_domains.jsonl")

HIST_BUCKETS = 16
ROW_LIMIT = 500

PAGE = """
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Wildcard Domain Finder</title>
    <style>
      body{font-family: ui-sans-serif, system-ui, sans-serif; margin:0 auto; max-width:1100px; padding:20px}
      header{display:flex; justify-content:space-between; align-items:baseline}
      .stats{display:flex; gap:16px; margin:12px 0; padding:0; list-style:none}
      .stats li{flex:1; padding:10px 14px; background:#f4f6f8; border-radius:6px}
      .stats b{display:block; font-size:1.4em}
      form.filters{display:flex; flex-wrap:wrap; gap:6px; margin:14px 0}
      form.filters input, form.filters select{padding:6px}
      .hist{display:flex; align-items:flex-end; gap:3px; height:90px; border-bottom:1px solid #ccc}
      .hist span{flex:1; background:#6b8fb3}
      table{width:100%; border-collapse:collapse; margin-top:12px}
      td, th{padding:6px 8px; border-bottom:1px solid #e3e3e3; text-align:left}
      .dim{color:#777; font-size:.9em}
    </style>
  </head>
  <body>
    <header>
      <h1>Available domains</h1>
      <span class="dim">{{ cache_path }} &middot; <a href="/export.csv">csv</a> &middot; <a href="/export.json">json</a></span>
    </header>
    <ul class="stats">
      <li>checked<b>{{ stats.total_checked }}</b></li>
      <li>available<b>{{ stats.available }}</b></li>
      <li>taken<b>{{ stats.taken }}</b></li>
      <li>unknown<b>{{ stats.unknown }}</b></li>
    </ul>

    <form class="filters" method="get">
      <input type="search" name="q" placeholder="contains" value="{{ q }}" />
      <input type="number" name="min_len" min="1" placeholder="min len" value="{{ min_len if min_len is not none else '' }}" />
      <input type="number" name="max_len" min="1" placeholder="max len" value="{{ max_len if max_len is not none else '' }}" />
      <select name="tld">
        <option value="">any tld</option>
        {% for t in tlds %}<option value="{{ t }}" {% if t == tld %}selected{% endif %}>.{{ t }}</option>{% endfor %}
      </select>
      <select name="sort">
        <option value="">as checked</option>
        {% for m in sort_modes %}<option value="{{ m }}" {% if m == sort %}selected{% endif %}>{{ m }}</option>{% endfor %}
      </select>
      <input type="submit" value="apply" />
    </form>

    <div class="hist" title="available names by label length">
      {% for n in hist %}<span style="height: {{ (n / hist_max * 100)|round }}%" title="{{ loop.index }} chars: {{ n }}"></span>{% endfor %}
    </div>

    <table>
      <thead><tr><th>domain</th><th>tld</th><th>len</th><th>checked at</th></tr></thead>
      <tbody>
      {% for r in rows %}
        <tr><td>{{ r.domain }}</td><td>.{{ r.tld }}</td><td>{{ r.name|length }}</td><td class="dim">{{ r.checked_at }}</td></tr>
      {% else %}
        <tr><td colspan="4" class="dim">nothing yet</td></tr>
      {% endfor %}
      </tbody>
    </table>
    {% if shown < matched %}<p class="dim">showing {{ shown }} of {{ matched }}</p>{% endif %}
  </body>
</html>
"""


def cache_records():
    return list(load_cache(app.config["CACHE_PATH"]).values())


def stats_for(records):
    return {
        "total_checked": len(records),
        "available": sum(1 for r in records if r.available is True),
        "taken": sum(1 for r in records if r.available is False),
        "unknown": sum(1 for r in records if r.available is None),
    }


def available_records(records=None):
    return [r for r in (cache_records() if records is None else records) if r.available is True]


def length_histogram(records):
    buckets = [0] * HIST_BUCKETS
    for r in records:
        if 1 <= len(r.name) <= HIST_BUCKETS:
            buckets[len(r.name) - 1] += 1
    return buckets


def filter_rows(rows, q="", min_len=None, max_len=None, tld=""):
    return [
        r for r in rows
        if (not q or q in r.domain)
        and (min_len is None or len(r.name) >= min_len)
        and (max_len is None or len(r.name) <= max_len)
        and (not tld or r.tld == tld)
    ]


@app.route("/")
def index():
    args = request.args
    q = args.get("q", "").strip().lower()
    tld = args.get("tld", "").strip().lower().lstrip(".")
    sort = args.get("sort", "").strip().lower()
    min_len = args.get("min_len", type=int)
    max_len = args.get("max_len", type=int)

    records = cache_records()
    available = available_records(records)
    hist = length_histogram(available)
    rows = filter_rows(available, q, min_len, max_len, tld)
    if sort in SORT_MODES:
        rows = sort_results(rows, sort)

    return render_template_string(
        PAGE, rows=rows[:ROW_LIMIT], shown=min(len(rows), ROW_LIMIT), matched=len(rows),
        stats=stats_for(records), hist=hist, hist_max=max(hist) or 1,
        tlds=sorted({r.tld for r in available}), q=q, tld=tld, sort=sort,
        min_len=min_len, max_len=max_len, sort_modes=SORT_MODES, cache_path=app.config["CACHE_PATH"],
    )


@app.route("/api/stats")
def api_stats():
    return jsonify(stats_for(cache_records()))


@app.route("/export.csv")
def export_csv():
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for r in sort_results(available_records(), "alpha"):
        writer.writerow(csv_row(r))
    return Response(buf.getvalue().encode("utf-8"), mimetype="text/csv",
                    headers={"Content-Disposition": "attachment; filename=available_domains.csv"})


@app.route("/export.json")
def export_json():
    return jsonify([r.to_dict() for r in sort_results(available_records(), "alpha")])


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=int(os.environ.get("PORT", "8088")), debug=False)

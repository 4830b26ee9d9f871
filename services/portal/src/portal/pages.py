from __future__ import annotations

from html import escape

from common.models import (
    ApplicationRecord,
    CandidateApplication,
    Company,
    JobRecord,
    SavedJobRecord,
    is_web_link,
)

CLERK_JS_URL = "https://cdn.jsdelivr.net/npm/@clerk/clerk-js@5/dist/clerk.browser.js"

SHARED_SCRIPT = """
      async function callApi(path, method, payload = null) {
        const response = await fetch(path, {
          method,
          headers: { 'Content-Type': 'application/json' },
          body: payload === null ? null : JSON.stringify(payload)
        });
        const data = await response.json();
        if (!response.ok) {
          throw new Error(data.detail || JSON.stringify(data));
        }
        return data;
      }

      function notify(message) {
        const toast = document.getElementById('toast');
        toast.textContent = message;
        toast.hidden = false;
        setTimeout(() => { toast.hidden = true; }, 4000);
      }
"""


def render_page(title: str, body: str, script: str = "") -> str:
    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{escape(title)} | Hired</title>
    <style>
      body {{ font-family: ui-sans-serif, system-ui, sans-serif; margin: 2rem; max-width: 1100px; }}
      nav a {{ margin-right: 1rem; }}
      .card {{ border: 1px solid #ddd; border-radius: 8px; padding: 1rem; margin: 0.75rem 0; }}
      #toast {{ position: fixed; bottom: 1rem; right: 1rem; background: #222; color: #fff; padding: 0.75rem; }}
    </style>
  </head>
  <body>
    <nav><a href="/">Hired</a><a href="/jobs">Jobs</a><a href="/my-jobs">My Jobs</a><a href="/saved-jobs">Saved</a></nav>
    <h1>{escape(title)}</h1>
    {body}
    <div id="toast" hidden></div>
    <script>{SHARED_SCRIPT}{script}</script>
  </body>
</html>
"""


def _resume_link(application: ApplicationRecord) -> str:
    if not is_web_link(application.resume):
        return f"Resume: {escape(application.resume)}"
    return f'<a href="{escape(application.resume)}" rel="noopener noreferrer">Resume</a>'


def _company_name(job: JobRecord) -> str:
    return job.company.name if job.company else "Unknown company"


def _job_card(job: JobRecord, *, show_save: bool = True) -> str:
    saved = "Unsave" if job.saved else "Save"
    status = "Open" if job.is_open else "Closed"
    save_button = (
        f'<button onclick="toggleSave({job.id})">{saved}</button>' if show_save else ""
    )
    return (
        f'<div class="card"><h3><a href="/job/{job.id}">{escape(job.title)}</a></h3>'
        f"<p>{escape(_company_name(job))} &middot; {escape(job.location)} &middot; {status}</p>"
        f"{save_button}</div>"
    )


TOGGLE_SAVE_SCRIPT = """
      async function toggleSave(jobId) {
        try {
          const data = await callApi(`/api/saved-jobs/${jobId}/toggle`, 'POST');
          notify(data.status === 'saved' ? 'Job saved' : 'Job removed from saved');
          window.location.reload();
        } catch (err) {
          notify(err.message);
        }
      }
"""


def landing_page(first_name: str | None) -> str:
    greeting = f"Welcome back, {escape(first_name)}." if first_name else "Welcome."
    body = f"""
    <p>{greeting} Find your dream job or find the best candidate.</p>
    <p><a href="/jobs">Find Jobs</a> | <a href="/post-job">Post a Job</a></p>
    """
    return render_page("Hired", body)


def sign_in_page(publishable_key: str) -> str:
    body = f"""
    <div id="sign-in"></div>
    <script
      async
      crossorigin="anonymous"
      data-clerk-publishable-key="{escape(publishable_key)}"
      src="{CLERK_JS_URL}"
      onload="startSignIn()"
    ></script>
    """
    script = """
      async function startSignIn() {
        await window.Clerk.load();
        if (window.Clerk.session) {
          const token = await window.Clerk.session.getToken();
          const secure = window.location.protocol === 'https:' ? '; Secure' : '';
          document.cookie = `__session=${token}; path=/; SameSite=Lax${secure}`;
          window.location.href = '/';
          return;
        }
        window.Clerk.mountSignIn(document.getElementById('sign-in'), {
          afterSignInUrl: '/?sign-in=true'
        });
      }
"""
    return render_page("Sign in", body, script)


def onboarding_page() -> str:
    body = """
    <h2>I am a...</h2>
    <button onclick="chooseRole('candidate')">Candidate</button>
    <button onclick="chooseRole('recruiter')">Recruiter</button>
    """
    script = """
      async function chooseRole(role) {
        const response = await fetch('/onboarding', {
          method: 'POST',
          headers: { 'Content-Type': 'application/json' },
          body: JSON.stringify({ role })
        });
        if (response.redirected) {
          window.location.href = response.url;
        }
      }
"""
    return render_page("Onboarding", body, script)


def job_listing_page(jobs: list[JobRecord], search_query: str | None = None) -> str:
    cards = "".join(_job_card(job) for job in jobs) or "<p>No jobs found.</p>"
    body = f"""
    <form method="get" action="/jobs">
      <input name="search" placeholder="Search jobs by title" value="{escape(search_query or '')}" />
      <input name="location" placeholder="Location" />
      <button type="submit">Search</button>
    </form>
    {cards}
    """
    return render_page("Latest Jobs", body, TOGGLE_SAVE_SCRIPT)


def job_detail_page(job: JobRecord, viewer_id: str | None) -> str:
    is_owner = viewer_id == job.recruiter_id
    applications = job.applications or []
    if is_owner:
        rows = "".join(
            f'<div class="card">{escape(application.name)} &middot; '
            f"{escape(application.status)} &middot; "
            f"{_resume_link(application)}</div>"
            for application in applications
        ) or "<p>No applications yet.</p>"
        hiring = "Close hiring" if job.is_open else "Open hiring"
        actions = (
            f'<button onclick="setHiring({job.id}, {str(not job.is_open).lower()})">{hiring}</button>'
            f"<h2>Applications</h2>{rows}"
        )
    elif applications:
        actions = f"<p>You applied on {escape(applications[0].created_at)}.</p>"
    elif job.is_open:
        actions = f'<a href="#apply" onclick="applyTo({job.id})">Apply</a>'
    else:
        actions = "<p>Hiring is closed for this role.</p>"

    body = f"""
    <p>{escape(_company_name(job))} &middot; {escape(job.location)}</p>
    <h2>About the job</h2>
    <p>{escape(job.description)}</p>
    <h2>What we are looking for</h2>
    <pre>{escape(job.requirements)}</pre>
    {actions}
    """
    script = """
      async function setHiring(jobId, isOpen) {
        await callApi(`/api/jobs/${jobId}/hiring-status`, 'PATCH', { is_open: isOpen });
        window.location.reload();
      }

      async function applyTo(jobId) {
        const name = prompt('Your name');
        const resume = prompt('Link to your resume');
        if (!name || !resume) return;
        try {
          await callApi(`/api/jobs/${jobId}/applications`, 'POST', { name, resume });
          window.location.reload();
        } catch (err) {
          notify(err.message);
        }
      }
"""
    return render_page(job.title, body, script)


def post_job_page(companies: list[Company]) -> str:
    options = "".join(
        f'<option value="{company.id}">{escape(company.name)}</option>' for company in companies
    )
    body = f"""
    <input id="title" placeholder="Job Title" />
    <textarea id="description" placeholder="Job Description"></textarea>
    <input id="location" placeholder="Job Location" />
    <select id="company_id"><option value="">Company</option>{options}</select>
    <textarea id="requirements" placeholder="Requirements"></textarea>
    <button onclick="submitJob()">Submit</button>
    """
    script = """
      async function submitJob() {
        const value = id => document.getElementById(id).value.trim();
        try {
          const job = await callApi('/api/jobs', 'POST', {
            title: value('title'),
            description: value('description'),
            location: value('location'),
            company_id: Number(value('company_id')),
            requirements: value('requirements')
          });
          notify(`"${job.title}" has been posted.`);
          window.location.href = '/jobs';
        } catch (err) {
          notify(err.message);
        }
      }
"""
    return render_page("Post a Job", body, script)


def my_applications_page(applications: list[CandidateApplication]) -> str:
    cards = "".join(
        f'<div class="card"><h3>{escape(application.job.title)}</h3>'
        f"<p>{escape(application.job.company.name if application.job.company else '')} "
        f"&middot; {escape(application.status)}</p></div>"
        for application in applications
    ) or "<p>No applications yet.</p>"
    return render_page("My Applications", cards)


def my_jobs_page(jobs: list[JobRecord]) -> str:
    cards = "".join(_job_card(job, show_save=False) for job in jobs) or "<p>No jobs posted yet.</p>"
    return render_page("My Jobs", cards)


def saved_jobs_page(saved: list[SavedJobRecord]) -> str:
    cards = "".join(_job_card(item.job) for item in saved) or "<p>No saved jobs.</p>"
    return render_page("Saved Jobs", cards, TOGGLE_SAVE_SCRIPT)


def admin_page(backoffice_base_url: str) -> str:
    base = escape(backoffice_base_url.rstrip("/"))
    body = """
    <label>Admin API key (if configured)</label>
    <input id="admin_key" type="password" />
    <button onclick="loadUsers()">Users</button>
    <button onclick="loadJobs()">Jobs</button>
    <table id="users"></table>
    <table id="jobs"></table>
    <pre id="output"></pre>
    """
    script = f"""
      const BACKOFFICE = '{base}';

      class BackofficeError extends Error {{
        constructor(data) {{
          super(data.error || 'Request failed');
          this.body = data;
        }}
      }}

      async function backoffice(path, method = 'GET') {{
        const key = document.getElementById('admin_key').value.trim();
        const response = await fetch(`${{BACKOFFICE}}${{path}}`, {{
          method,
          headers: key ? {{ 'x-api-key': key }} : {{}}
        }});
        const data = await response.json().catch(() => ({{ error: response.statusText }}));
        if (!response.ok) throw new BackofficeError(data);
        return data;
      }}

      function show(value) {{
        document.getElementById('output').textContent = JSON.stringify(value, null, 2);
      }}

      function showError(error) {{
        notify(error.message);
        show(error.body || {{ error: error.message }});
      }}

      function cell(row, text) {{
        const td = row.insertCell();
        td.textContent = text ?? '';
        return td;
      }}

      function action(row, label, run) {{
        const button = document.createElement('button');
        button.textContent = label;
        button.onclick = async () => {{
          if (!confirm(`${{label}}?`)) return;
          try {{
            const result = await run();
            notify(result.message || 'Done');
            show(result);
            await Promise.all([loadUsers(), loadJobs()]);
          }} catch (error) {{
            showError(error);
          }}
        }};
        row.insertCell().appendChild(button);
      }}

      async function loadUsers() {{
        const table = document.getElementById('users');
        try {{
          const users = await backoffice('/api/get-clerk-users');
          table.replaceChildren();
          for (const user of users) {{
            const id = encodeURIComponent(user.id);
            const row = table.insertRow();
            cell(row, user.id);
            cell(row, user.email_addresses?.[0]?.email_address);
            cell(row, user.banned ? 'banned' : 'active');
            action(row, 'Delete user', () => backoffice(`/api/delete-user/${{id}}`, 'DELETE'));
            if (user.banned) {{
              action(row, 'Unban user', () => backoffice(`/api/unban-user/${{id}}`, 'POST'));
            }} else {{
              action(row, 'Ban user', () => backoffice(`/api/ban-user/${{id}}`, 'POST'));
            }}
          }}
        }} catch (error) {{
          showError(error);
        }}
      }}

      async function loadJobs() {{
        const table = document.getElementById('jobs');
        try {{
          const jobs = await backoffice('/api/get-jobs');
          table.replaceChildren();
          for (const job of jobs) {{
            const row = table.insertRow();
            cell(row, job.title);
            cell(row, job.companies?.name);
            cell(row, job.recruiter_email);
            action(row, 'Delete job', () => backoffice(`/api/delete-job/${{job.id}}`, 'DELETE'));
          }}
        }} catch (error) {{
          showError(error);
        }}
      }}
"""
    return render_page("Admin", body, script)

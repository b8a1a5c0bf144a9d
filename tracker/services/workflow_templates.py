"""
Workflow template registry.

Built-in fire-proofing workflows, each a named ordered list of job titles.
Rows in ``workflow_templates`` override or extend these by key; the CLI
command ``flask seed-workflow-templates`` copies the built-ins into the
table so they can be edited per installation.

Usage:
    from tracker.services.workflow_templates import builtin_templates
    titles = builtin_templates()["cement_fire_proofing"]
"""

import logging

logger = logging.getLogger(__name__)

# Order keys of template steps are offset + step * TEMPLATE_STEP_STRIDE.
TEMPLATE_STEP_STRIDE = 100.0

DEFAULT_TEMPLATES = {
    "cement_fire_proofing": {
        "display_name": "Cement Fire Proofing",
        "fire_proofing_type": "Cement",
        "steps": [
            "Surface Preparation",
            "Rockwool Filling",
            "Adhesive coat/Primer",
            "Vermiculite-Cement",
            "Thickness inspection",
            "Sealer coat",
            "WIR",
        ],
    },
    "gypsum_fire_proofing": {
        "display_name": "Gypsum Fire Proofing",
        "fire_proofing_type": "Gypsum",
        "steps": [
            "Surface Preparation",
            "Rockwool Filling",
            "Adhesive coat/Primer",
            "Vermiculite-Gypsum",
            "Thickness inspection",
            "Sealer coat",
            "WIR",
        ],
    },
    "intumescent_coatings": {
        "display_name": "Intumescent Coatings",
        "fire_proofing_type": "Intumescent",
        "steps": [
            "Surface Preparation",
            "Primer",
            "Coat -1",
            "Coat-2",
            "Coat-3",
            "Coat-4",
            "Coat-5",
            "Thickness inspection",
            "Top Coat",
        ],
    },
    "refinery_fire_proofing": {
        "display_name": "Refinery Fire Proofing",
        "fire_proofing_type": "Refinery",
        "steps": [
            "Scaffolding Errection",
            "Surface Preparation",
            "Primer/Adhesive coat",
            "Mesh",
            "FP 1 Coat",
            "FP Finish coat",
            "Sealer",
            "Top coat Primer",
            "Top coat",
            "Sealant",
            "Inspection",
            "Scaffolding -Dismantling",
        ],
    },
}


def builtin_templates() -> dict:
    """``{workflow_key: [job titles]}`` for the built-in workflows."""
    return {key: list(t["steps"]) for key, t in DEFAULT_TEMPLATES.items()}


def display_name(workflow_key: str) -> str:
    template = DEFAULT_TEMPLATES.get(workflow_key)
    if template:
        return template["display_name"]
    return workflow_key.replace("_", " ").title()


def fire_proofing_type(workflow_key: str) -> str:
    """Fire-proofing material family for a workflow key."""
    template = DEFAULT_TEMPLATES.get(workflow_key)
    if template:
        return template["fire_proofing_type"]
    key = workflow_key.lower()
    for needle, label in (("cement", "Cement"), ("gypsum", "Gypsum"),
                          ("intumescent", "Intumescent"), ("refinery", "Refinery")):
        if needle in key:
            return label
    return "Other"


def describe_step(title: str, step: int, total: int, workflow_key: str) -> str:
    return f"{title} - Step {step} of {total} for {workflow_key.replace('_', ' ')}"


def seed_default_templates():
    """
    Insert the built-in workflows into ``workflow_templates``.
    Safe to run multiple times — skips keys that already exist.

    Transaction policy: flush only; the caller commits.
    """
    from tracker.models import db
    from tracker.models.workflow_template import WorkflowTemplate

    created = 0
    for key, template in DEFAULT_TEMPLATES.items():
        exists = WorkflowTemplate.query.filter_by(key=key).first()
        if not exists:
            db.session.add(WorkflowTemplate(
                key=key,
                display_name=template["display_name"],
                fire_proofing_type=template["fire_proofing_type"],
                steps=list(template["steps"]),
            ))
            created += 1

    if created > 0:
        db.session.flush()
        logger.info("Seeded %d workflow templates", created)

    return created

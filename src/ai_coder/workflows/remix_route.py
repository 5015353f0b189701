"""``ai-coder remix-route``: design and write a new Remix route module.

Two sessions are used. The design session returns a structured
:class:`RouteDesign` through the ``design_route_module`` tool; the
catalogs turn its icon and component wishes into concrete imports and
examples; the generation session then streams the module source.
"""

import asyncio
import logging
import re
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, Field

from ai_coder.catalog import (
    LUCIDE_DIR,
    SHADCN_DIR,
    CatalogMetadata,
    encoding_for,
    examples_context,
)
from ai_coder.context import WorkflowContext
from ai_coder.errors import NoResultError, UserCancelled, WorkflowError
from ai_coder.index import Embedder, VectorIndex
from ai_coder.tools import ToolDefinition
from ai_coder.workflows.common import collect_turn

logger = logging.getLogger(__name__)

ROUTES_DIR = Path("app/routes")


class IconsToUse(BaseModel):
    does_new_component_need_icons: bool = False
    if_so_what_icons_are_needed: list[str] = Field(default_factory=list)


class ComponentsToUse(BaseModel):
    does_new_component_need_components: bool = False
    if_so_what_components_are_needed: list[str] = Field(default_factory=list)


class FollowupQuestions(BaseModel):
    does_new_component_need_followup_questions: bool = False
    if_so_what_followup_questions_are_needed: list[str] = Field(default_factory=list)


class RouteDesign(BaseModel):
    new_route_component_name: str = Field(min_length=1)
    new_route_module_description: str
    does_new_route_need_loader: bool = False
    does_new_route_need_action: bool = False
    icons_to_use: IconsToUse = Field(default_factory=IconsToUse)
    ui_components_to_use: ComponentsToUse = Field(default_factory=ComponentsToUse)
    followup_questions: FollowupQuestions = Field(default_factory=FollowupQuestions)

    @property
    def icons(self) -> list[str]:
        if not self.icons_to_use.does_new_component_need_icons:
            return []
        return [i for i in self.icons_to_use.if_so_what_icons_are_needed if i]

    @property
    def components(self) -> list[str]:
        if not self.ui_components_to_use.does_new_component_need_components:
            return []
        return [
            c for c in self.ui_components_to_use.if_so_what_components_are_needed if c
        ]

    @property
    def questions(self) -> list[str]:
        if not self.followup_questions.does_new_component_need_followup_questions:
            return []
        return [
            q for q in self.followup_questions.if_so_what_followup_questions_are_needed
            if q
        ]


def _flagged_list(flag: str, flag_desc: str, items: str, item_desc: str, desc: str) -> dict:
    return {
        "type": "object",
        "description": desc,
        "properties": {
            flag: {"type": "boolean", "description": flag_desc},
            items: {
                "type": "array",
                "items": {"type": "string", "description": item_desc},
            },
        },
        "required": [flag, items],
    }


DESIGN_TOOL = ToolDefinition(
    name="design_route_module",
    description="Generate the design details required to create a new route module",
    parameters={
        "type": "object",
        "properties": {
            "new_route_component_name": {
                "type": "string",
                "description": "The name of the new route component",
            },
            "new_route_module_description": {
                "type": "string",
                "description": (
                    "A description of the route module design task based on "
                    "the user query. Stick strictly to what the user asked for."
                ),
            },
            "does_new_route_need_loader": {
                "type": "boolean",
                "description": "Does the new route module need a loader export",
            },
            "does_new_route_need_action": {
                "type": "boolean",
                "description": "Does the new route module need an action export",
            },
            "icons_to_use": _flagged_list(
                "does_new_component_need_icons",
                "Does the new component need icons",
                "if_so_what_icons_are_needed",
                "The name of an icon needed",
                "The icons to use in the new component",
            ),
            "ui_components_to_use": _flagged_list(
                "does_new_component_need_components",
                "Does the new component need UI components",
                "if_so_what_components_are_needed",
                "The name of a component needed",
                "The React UI components to use in the new component",
            ),
            "followup_questions": _flagged_list(
                "does_new_component_need_followup_questions",
                "Are there followup questions for the user",
                "if_so_what_followup_questions_are_needed",
                "A followup question",
                "Followup questions to ask the user",
            ),
        },
        "required": [
            "new_route_component_name",
            "new_route_module_description",
            "does_new_route_need_loader",
            "does_new_route_need_action",
            "icons_to_use",
            "ui_components_to_use",
            "followup_questions",
        ],
    },
)


def design_route_module_tool(arguments: dict) -> RouteDesign:
    return RouteDesign.model_validate(arguments)


DESIGN_SYSTEM_PROMPT = (
    "Your task is to write a detailed plan to implement a Remix.run route "
    "module according to the user's explanation.\n"
    "You can use the Remix.run documentation for reference: "
    "`https://remix.run/docs/en/main`.\n"
    "The React component you write can make use of Tailwind classes for styling.\n"
    "If you need a UI component, icon, or utility function specify them.\n"
)

GENERATE_SYSTEM_PROMPT = (
    "You are an expert at writing Remix.run applications.\n"
    "Your task is to write a new Remix.run route module for a web app, "
    "according to the provided task details.\n"
    "The default export route component can make use of Tailwind classes for styling.\n"
    "If you judge it is relevant to do so, you can use library components and icons.\n\n"
    "You will write the full route module: component code, loader, and action, "
    "including all imports. Your generated code will be written directly to a "
    ".tsx file and used in production."
)

REMIX_IMPORTS = (
    "IMPORTS:\n"
    "REMIX:\n```tsx\n"
    'import type { ActionFunctionArgs, LoaderFunctionArgs, MetaFunction } from "@remix-run/node";\n'
    'import { json, redirect } from "@remix-run/node";\n'
    "import { Form, Link, NavLink, Outlet, useActionData, useFetcher, "
    "useLoaderData, useNavigation, useParams, useRouteError, useSearchParams, "
    'useSubmit, isRouteErrorResponse } from "@remix-run/react";\n'
    "```\n"
)

THEMING_REFERENCE = (
    "THEMING AND STYLING REFERENCE:\n"
    "Components use CSS variables through Tailwind utility classes with a "
    "`background` / `foreground` naming convention, for example "
    '`<div className="bg-primary text-primary-foreground">`.\n'
    "Available pairs: background/foreground, muted/muted-foreground, "
    "card/card-foreground, popover/popover-foreground, primary/primary-foreground, "
    "secondary/secondary-foreground, accent/accent-foreground, "
    "destructive/destructive-foreground; plus border, input, ring and the "
    "`rounded-*` radius scale.\n"
)

GENERATE_RULES = (
    "The full code of the route module will be written directly to a .tsx file "
    "inside the routes directory. Make sure all necessary imports are present "
    "and that the code is enclosed in a ```tsx block.\n"
    "Answer with code only, no extra description or commentary.\n"
    "Important:\n"
    "- Only use the imports provided above.\n"
    "- All inputs should be uncontrolled and not rely on local state.\n"
    "- All inputs should have a name attribute.\n"
    "- Style with Tailwind classes in className only; no <style> tags or CSS.\n"
    "- The component must be the default export.\n"
    "- Loaders and actions must be async function declarations, never arrow functions.\n"
)


def route_path(filename: str, routes_dir: Path = ROUTES_DIR) -> Path:
    """Resolve *filename* under *routes_dir*, refusing to escape it."""
    name = PurePosixPath(filename.strip())
    if not filename.strip() or name.is_absolute() or ".." in name.parts:
        raise WorkflowError(f"Invalid route filename: {filename!r}")
    return routes_dir / Path(*name.parts)


_CODE_BLOCK = re.compile(r"```(?:tsx|ts|jsx|typescript)?[^\n]*\n(.*?)```", re.DOTALL)


def extract_code(text: str) -> str:
    """Source from the first fenced block, or the whole text if unfenced."""
    match = _CODE_BLOCK.search(text)
    code = match.group(1) if match else text
    return code.strip() + "\n"


def module_outline(component_name: str) -> str:
    return (
        "ROUTE MODULE OUTLINE:\n```tsx\n"
        'import type { ActionFunctionArgs, LoaderFunctionArgs } from "@remix-run/node";\n'
        'import { json } from "@remix-run/node";\n'
        'import { useActionData, useLoaderData } from "@remix-run/react";\n\n'
        "export async function loader({}: LoaderFunctionArgs) {\n"
        "  return json({ });\n}\n\n"
        "export async function action({}: ActionFunctionArgs) {\n"
        "  return json({ });\n}\n\n"
        f"export default function {component_name}() {{\n"
        "  const actionData = useActionData<typeof action>();\n"
        "  const loaderData = useLoaderData<typeof loader>();\n"
        "}\n```\n\n"
    )


class CatalogContext:
    """Imports and examples picked from the catalogs for one design."""

    def __init__(self) -> None:
        self.imports = REMIX_IMPORTS
        self.icons: list[str] = []
        self.components: list[str] = []
        self.examples: list[str] = []


async def resolve_catalogs(
    design: RouteDesign, embedder: Embedder, catalog_dir: Path,
) -> CatalogContext:
    """Map requested icons and components onto real catalog entries.

    Each request list is embedded as one newline-joined query and the
    index returns as many neighbours as there were requests.
    """
    catalog = CatalogContext()

    if design.icons:
        index = VectorIndex.load(catalog_dir / LUCIDE_DIR / "index")
        vector = await embedder.embed("\n".join(design.icons))
        hits = index.query(vector, len(design.icons))
        catalog.icons = list(dict.fromkeys(h.metadata["icon"] for h in hits))
        if catalog.icons:
            catalog.imports += (
                "ICONS:\n```tsx\n"
                f"import {{ {', '.join(catalog.icons)} }} from 'lucide-react';\n"
                "```\n"
            )

    if design.components:
        metadata = CatalogMetadata.load(catalog_dir / SHADCN_DIR / "metadata.json")
        index = VectorIndex.load(catalog_dir / SHADCN_DIR / "index")
        vector = await embedder.embed("\n".join(design.components))
        hits = index.query(vector, len(design.components))
        lines = []
        for hit in hits:
            name = hit.metadata["name"]
            component = metadata.components.get(name)
            if component is None or name in catalog.components:
                continue
            catalog.components.append(name)
            lines.append(component.import_statement.rstrip("\n"))
            for example in metadata.examples_for(name):
                if example not in catalog.examples:
                    catalog.examples.append(example)
        if lines:
            catalog.imports += "UI COMPONENTS:\n```tsx\n" + "\n".join(lines) + "\n```\n"

    catalog.imports += "\n"
    return catalog


def design_summary(
    description: str, design: RouteDesign, catalog: CatalogContext, qa: str,
) -> str:
    parts = [
        f"Request:\n{description}\n",
        f"Route Component Name:\n{design.new_route_component_name}\n",
        f"Needs Loader:\n{'yes' if design.does_new_route_need_loader else 'no'}\n",
        f"Needs Action:\n{'yes' if design.does_new_route_need_action else 'no'}\n",
        f"Route Description:\n{design.new_route_module_description}\n",
    ]
    if catalog.icons:
        parts.append(f"Icons To Use:\n{', '.join(catalog.icons)}\n")
    if catalog.components:
        parts.append(f"Components To Use:\n{', '.join(catalog.components)}\n")
    if qa:
        parts.append(f"Followup Questions:\n{qa}")
    return "\n".join(parts)


def generation_request(
    description: str, design: RouteDesign, catalog: CatalogContext,
    examples: str, qa: str,
) -> str:
    return (
        f"ORIGINAL DESCRIPTION:\n```\n{description}\n```\n\n"
        f"COMPONENT NAME: {design.new_route_component_name}\n"
        f"ROUTE MODULE NEEDS LOADER: {'yes' if design.does_new_route_need_loader else 'no'}\n"
        f"ROUTE MODULE NEEDS ACTION: {'yes' if design.does_new_route_need_action else 'no'}\n"
        f"ROUTE MODULE DESCRIPTION:\n```\n{design.new_route_module_description}\n```\n\n"
        + (f"FOLLOWUP Q&A:\n{qa}\n" if qa else "")
        + catalog.imports
        + examples
        + module_outline(design.new_route_component_name)
        + GENERATE_RULES
    )


async def run(
    ctx: WorkflowContext,
    routes_dir: Path = ROUTES_DIR,
    encoding=None,
) -> Path:
    """Design, review, generate and write a route module.

    Returns the path written.
    """
    prompter, console = ctx.prompter, ctx.console

    filename = await prompter.ask(f"What is the filename of the route module? {routes_dir}/")
    if not filename:
        raise UserCancelled("No filename provided.")
    target = route_path(filename, routes_dir)

    description = await prompter.ask("Describe what the route should do.", multiline=True)
    if not description:
        raise UserCancelled("No description provided.")

    design_session = ctx.new_session()
    design_session.register_tool(DESIGN_TOOL, design_route_module_tool)
    design_session.add_system_messages(DESIGN_SYSTEM_PROMPT)

    console.print("Designing the new remix.run route module", end="")
    turn = await collect_turn(
        design_session.send(
            "Components from `ui.shadcn.com` should be used to build the UI.\n"
            "Icons from `lucide-react` can be used to build the UI.\n"
            f"ROUTE FILENAME: {filename}\n"
            f"ROUTE DESCRIPTION:\n```\n{description}\n```\n\n"
            "Design the new remix.run route module."
        ),
        console,
        progress=True,
    )
    design = turn.results.get(DESIGN_TOOL.name)
    if design is None:
        raise NoResultError("No route design generated.")

    embedder = Embedder(ctx.provider, ctx.settings.embedding_model)
    catalog = await resolve_catalogs(design, embedder, Path(ctx.settings.catalog_dir))

    if encoding is None:
        encoding = encoding_for(ctx.settings.model)
    examples = examples_context(catalog.examples, encoding)

    qa = ""
    for question in design.questions:
        answer = await prompter.ask(question, multiline=True)
        if answer:
            qa += f"Q: {question}\nA: {answer}\n"

    while True:
        console.print(design_summary(description, design, catalog, qa), markup=False)
        if await prompter.confirm("Proceed to generate the new route module?"):
            break
        extra_question = "What additional context would be useful?"
        answer = await prompter.ask(extra_question, multiline=True)
        if not answer:
            raise UserCancelled("Route generation cancelled.")
        qa += f"Q: {extra_question}\nA: {answer}\n"

    generate_session = ctx.new_session()
    generate_session.add_system_messages(GENERATE_SYSTEM_PROMPT)
    console.print("Generating the new route module...")
    turn = await collect_turn(
        generate_session.send(
            THEMING_REFERENCE,
            generation_request(description, design, catalog, examples, qa),
        ),
        console,
    )
    code = extract_code(turn.text)
    if not code.strip():
        raise NoResultError("The model returned no code for the route module.")

    if not await prompter.confirm(f"Proceed to write the new route module to disk at {target}?"):
        raise UserCancelled("User cancelled.")

    def write() -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(code, encoding="utf8")

    await asyncio.to_thread(write)
    logger.info(f"Wrote {target}")
    console.print(f"Wrote {target}", markup=False)
    return target

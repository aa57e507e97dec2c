import html
import asyncio
import logging
import gradio as gr
from typing import Any, Dict, List, Optional, Tuple

from attempt_tracker import AttemptTracker
from block_manager import BlockManager, TutorialManager
from config import Settings, get_settings
from errors import EmptyAnswer, IllegalTransition, RemoteValidationFailed
from models import Block, BlockType
from progress_state import Phase, TutorialSession
from progress_tracker import ProgressTracker
from quiz_endpoints import QuizEndpoints
from tutorial_storage import TutorialStorage

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

YES_NO_CHOICES = ["Yes", "No"]

# Forwards ArrowLeft/ArrowRight/Enter to the hidden key box; typing in text fields is left alone
KEY_SHORTCUTS_JS = """
() => {
    document.addEventListener('keydown', (event) => {
        if (!['ArrowLeft', 'ArrowRight', 'Enter'].includes(event.key)) return;
        const target = event.target;
        const tag = target && target.tagName;
        if (tag === 'TEXTAREA' || tag === 'SELECT') return;
        if (tag === 'INPUT' && !(target.type === 'radio' || target.type === 'checkbox')) return;
        if (tag === 'INPUT' && event.key !== 'Enter') return;
        const box = document.querySelector('#gots-key-input textarea');
        if (!box) return;
        event.preventDefault();
        box.value = event.key + '|' + Date.now();
        box.dispatchEvent(new Event('input', {bubbles: true}));
    });
}
"""
KEY_INPUT_CSS = "#gots-key-input { display: none !important; }"


class AppState:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.storage = TutorialStorage(settings.data_dir)
        self.attempts = AttemptTracker(settings.data_dir)
        self.progress = ProgressTracker(settings.data_dir, settings.progress_ttl)
        self.tutorials = TutorialManager(self.storage, self.attempts)
        self.blocks = BlockManager(self.storage, self.attempts)
        self.endpoints = QuizEndpoints(self.storage, self.attempts, self.progress)
        self.session: Optional[TutorialSession] = None
        self.tutorial_title = ""
        self.show_progress_bar = True


state = AppState(settings)


async def remote_grader(block_id: str, answer: Any) -> Dict[str, Any]:
    """Send an answer to the grading endpoint"""
    body, status = await asyncio.to_thread(state.endpoints.validate_answer, block_id, {'answer': answer})
    if status != 200:
        raise RemoteValidationFailed(f"Grading endpoint returned {status}: {body.get('code')}")
    return body


def report_completion(snapshot: Dict[str, Any]) -> None:
    body, status = state.endpoints.save_progress(snapshot)
    if status == 200:
        logger.info(f"Completion recorded: {body['session_key']}")
    else:
        logger.warning(f"Completion not recorded ({status}): {body.get('message')}")


def seed_demo_tutorial() -> str:
    """Create a small published tutorial so a fresh install has something to show"""
    tutorial = state.tutorials.create("Getting Started with Search", metadata={'color_scheme': 'light'})
    add = state.blocks.create
    add(tutorial.id, BlockType.TEXT, {
        'title': 'Welcome',
        'content': 'Work through the steps on the left. The right pane shows the page we are talking about.',
        'embed_url': 'https://en.wikipedia.org/wiki/Search_engine',
    })
    add(tutorial.id, BlockType.QUIZ, {
        'title': 'Search basics',
        'question_type': 'multiple_choice',
        'question_text': 'Which of these is a search engine?',
        'options': ['A spreadsheet', 'A web search service', 'A text editor'],
        'correct_answer': 1,
        'embed_url': 'https://en.wikipedia.org/wiki/Search_engine',
    })
    add(tutorial.id, BlockType.DIVIDER, {'title': 'Part two'})
    add(tutorial.id, BlockType.QUIZ, {
        'title': 'Quotes',
        'question_type': 'yes_no',
        'question_text': 'Do quotation marks search for an exact phrase?',
        'correct_answer': True,
    })
    add(tutorial.id, BlockType.QUIZ, {
        'title': 'Operators',
        'question_type': 'checkbox',
        'question_text': 'Which of these are boolean operators?',
        'options': ['AND', 'MAYBE', 'OR', 'SOMETIMES'],
        'correct_answers': [0, 2],
    })
    add(tutorial.id, BlockType.QUIZ, {
        'title': 'Capital',
        'question_type': 'text_input',
        'question_text': 'What is the capital of France?',
        'correct_answers': ['Paris'],
        'show_answer': True,
    })
    state.tutorials.publish(tutorial.id)
    logger.info(f"Seeded demo tutorial: {tutorial.id}")
    return tutorial.id


def format_block_content(block: Block) -> str:
    """Format the left-pane content of a block"""
    payload = block.payload
    if block.type == BlockType.TEXT:
        body = payload.content
    elif block.type == BlockType.EMBED:
        body = f"Open resource: [{payload.url}]({payload.url})"
    elif block.type == BlockType.IMAGE:
        body = f"![{payload.image_alt}]({payload.image_url})\n\n*{payload.image_caption}*"
    elif block.type == BlockType.DIVIDER:
        body = "---"
    else:
        body = block.question.question_text
    return f"## {block.title}\n\n{body}"


def format_embed(url: Optional[str]) -> str:
    """Right-pane iframe, or a placeholder when the block has no resource"""
    if not url:
        return '<div class="gots-embed-placeholder" style="padding:2em;color:#888">No resource for this step.</div>'
    return (
        f'<iframe id="gots-embed-frame" src="{html.escape(url, quote=True)}" '
        f'style="width:100%;height:70vh;border:0"></iframe>'
    )


def format_progress_bar(fraction: float) -> str:
    return (
        '<div style="background:#eee;height:8px;border-radius:4px">'
        f'<div style="background:#3b82f6;height:8px;border-radius:4px;width:{fraction * 100:.1f}%"></div>'
        '</div>'
    )


def format_feedback(session: TutorialSession) -> str:
    result = session.current_result
    if result is None:
        return ""
    mark = "✅" if result.is_correct else "❌"
    text = f"{mark} {result.feedback or ('Correct!' if result.is_correct else 'Incorrect.')}"
    if result.normalized_correct is not None and not result.is_correct:
        correct = result.normalized_correct
        if isinstance(correct, list):
            correct = ", ".join(str(c) for c in correct)
        text += f"\n\nCorrect answer: {correct}"
    if not result.authoritative:
        text += "\n\n_Answer recorded. Could not reach the grading service._"
    return text


def format_results(session: TutorialSession) -> str:
    progress = session.progress
    return f"""# Tutorial Complete

Score: {progress.correct_count} / {progress.answered_count}

**{session.final_percentage}%**
"""


def render() -> Tuple:
    """Build updates for every tutorial component from the session state"""
    session = state.session
    hidden = gr.update(visible=False)
    if session is None or session.phase == Phase.NOT_STARTED:
        return (
            "", "", "", format_embed(None), hidden, hidden, hidden,
            gr.update(visible=False), "", hidden, hidden, hidden, gr.update(visible=False), "",
        )

    if session.phase == Phase.COMPLETED:
        return (
            "", "", "", format_embed(None), hidden, hidden, hidden,
            gr.update(visible=False), "", hidden, hidden, hidden,
            gr.update(visible=True), format_results(session),
        )

    block = session.current_block
    header = f"# {state.tutorial_title}\nBlock {session.current_index + 1} of {session.total_blocks}"
    question = block.question
    question_type = question.question_type if question else None
    locked = session.inputs_disabled
    pending = session.pending_answer

    radio = hidden
    checks = hidden
    text = hidden
    if question_type in ("multiple_choice", "yes_no"):
        choices = question.options if question_type == "multiple_choice" else YES_NO_CHOICES
        if question_type == "yes_no" and pending is not None:
            pending = 0 if str(pending).lower() == "yes" else 1
        value = choices[pending] if isinstance(pending, int) and 0 <= pending < len(choices) else None
        radio = gr.update(choices=choices, value=value, visible=True, interactive=not locked)
    elif question_type == "checkbox":
        chosen = [question.options[i] for i in (pending or []) if 0 <= i < len(question.options)]
        checks = gr.update(choices=question.options, value=chosen, visible=True, interactive=not locked)
    elif question_type == "text_input":
        text = gr.update(value=pending or "", visible=True, interactive=not locked)

    return (
        header,
        format_progress_bar(session.progress_fraction) if state.show_progress_bar else "",
        format_block_content(block),
        format_embed(session.embed_url),
        radio,
        checks,
        text,
        gr.update(
            visible=block.is_quiz,
            interactive=session.phase == Phase.SHOWING,
            value="Answered" if session.phase == Phase.ANSWERED else "Check Answer",
        ),
        format_feedback(session),
        gr.update(visible=True, interactive=not session.previous_disabled),
        gr.update(visible=session.show_next),
        gr.update(visible=session.show_finish),
        gr.update(visible=False),
        "",
    )


def with_status(status: str) -> Tuple:
    return (status,) + render()


def load_tutorial(tutorial_id: str) -> Tuple:
    """Load a tutorial and show its first block"""
    if state.session is not None:
        state.session.close()
    tutorial = state.tutorials.get(tutorial_id) if tutorial_id else None
    if tutorial is None:
        state.session = None
        return with_status("Error: Tutorial not found")

    state.tutorial_title = tutorial.title
    state.show_progress_bar = tutorial.metadata.enable_progress_bar
    state.session = TutorialSession(
        tutorial.id,
        state.blocks.list(tutorial.id),
        remote_grader=remote_grader if state.settings.remote_grading else None,
        remote_timeout=state.settings.remote_timeout,
        on_complete=report_completion,
    )
    state.session.start()
    if state.session.phase == Phase.NOT_STARTED:
        return with_status(f"Tutorial '{tutorial.title}' has no content yet")
    return with_status(f"Loaded tutorial: {tutorial.title}")


def select_choice(index: Optional[int]) -> Tuple:
    session = state.session
    if session is None or index is None:
        return with_status("")
    block = session.current_block
    if block is not None and block.is_quiz and block.question.question_type == "yes_no":
        session.select_option("yes" if index == 0 else "no")
    else:
        session.select_option(index)
    return with_status("")


def select_checks(indices: List[int]) -> Tuple:
    if state.session is not None:
        state.session.select_option(list(indices or []))
    return with_status("")


def enter_text(text: str) -> Tuple:
    if state.session is not None:
        state.session.select_option(text)
    return ("",)


async def submit_answer() -> Tuple:
    if state.session is None:
        return with_status("No active tutorial")
    try:
        result = await state.session.submit()
        return with_status("Correct!" if result.is_correct else "Incorrect.")
    except EmptyAnswer as e:
        return with_status(str(e))
    except IllegalTransition as e:
        logger.warning(f"Submit rejected: {str(e)}")
        return with_status(str(e))


def navigate(action: str) -> Tuple:
    if state.session is None:
        return with_status("No active tutorial")
    try:
        getattr(state.session, action)()
        return with_status("")
    except IllegalTransition as e:
        logger.warning(f"{action} rejected: {str(e)}")
        return with_status(str(e))


async def press_key(value: str) -> Tuple:
    """Keyboard shortcut forwarded from the page as '<key>|<timestamp>'"""
    key = (value or "").split("|", 1)[0]
    if state.session is None or not key:
        return with_status("")
    try:
        await state.session.handle_key(key)
        return with_status("")
    except (EmptyAnswer, IllegalTransition) as e:
        logger.warning(f"Shortcut {key} rejected: {str(e)}")
        return with_status(str(e))


def get_tutorial_choices() -> List[Tuple[str, str]]:
    return [(f"{t.title} ({t.status})", t.id) for t in state.tutorials.list()]


def create_interface():
    """Create the two-pane tutorial viewer"""
    with gr.Blocks(title="Split Guide", js=KEY_SHORTCUTS_JS, css=KEY_INPUT_CSS) as app:
        with gr.Row():
            tutorial_dropdown = gr.Dropdown(
                label="Tutorial",
                choices=get_tutorial_choices(),
                value=None,
                interactive=True,
            )
            load_btn = gr.Button("Start Tutorial", variant="primary")

        status_output = gr.Textbox(label="Status", interactive=False)
        header_output = gr.Markdown()
        progress_output = gr.HTML()

        with gr.Row():
            with gr.Column(scale=2):
                block_output = gr.Markdown()
                answer_radio = gr.Radio(choices=[], type="index", label="Your answer", visible=False)
                answer_checks = gr.CheckboxGroup(choices=[], type="index", label="Your answers", visible=False)
                answer_text = gr.Textbox(label="Your answer", visible=False)
                submit_btn = gr.Button("Check Answer", visible=False)
                feedback_output = gr.Markdown()
                with gr.Row():
                    prev_btn = gr.Button("Previous", visible=False)
                    next_btn = gr.Button("Next", visible=False)
                    finish_btn = gr.Button("Finish", variant="primary", visible=False)
            with gr.Column(scale=3):
                embed_output = gr.HTML(format_embed(None))

        results_output = gr.Markdown()
        restart_btn = gr.Button("Restart", visible=False)
        key_input = gr.Textbox(elem_id="gots-key-input", show_label=False, container=False)

        outputs = [
            status_output, header_output, progress_output, block_output, embed_output,
            answer_radio, answer_checks, answer_text, submit_btn, feedback_output,
            prev_btn, next_btn, finish_btn, restart_btn, results_output,
        ]

        load_btn.click(fn=load_tutorial, inputs=[tutorial_dropdown], outputs=outputs)
        answer_radio.input(fn=select_choice, inputs=[answer_radio], outputs=outputs)
        answer_checks.input(fn=select_checks, inputs=[answer_checks], outputs=outputs)
        answer_text.input(fn=enter_text, inputs=[answer_text], outputs=[status_output])
        answer_text.submit(fn=submit_answer, inputs=[], outputs=outputs)
        submit_btn.click(fn=submit_answer, inputs=[], outputs=outputs)
        prev_btn.click(fn=lambda: navigate("previous"), inputs=[], outputs=outputs)
        next_btn.click(fn=lambda: navigate("next"), inputs=[], outputs=outputs)
        finish_btn.click(fn=lambda: navigate("finish"), inputs=[], outputs=outputs)
        restart_btn.click(fn=lambda: navigate("restart"), inputs=[], outputs=outputs)
        key_input.input(fn=press_key, inputs=[key_input], outputs=outputs)

    return app


if __name__ == "__main__":
    if not state.tutorials.list():
        seed_demo_tutorial()
    app = create_interface()
    app.queue()
    app.launch(show_error=True)

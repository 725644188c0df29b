import asyncio
import json
import random
import unittest

from synthesis.agent.artifacts import RawItem, SynthesisRequest, TargetSpec
from synthesis.agent.content_schema import FEAT
from synthesis.agent.errors import (
    ClassificationError,
    GenerationFailed,
    GenerativeServiceError,
    QuotaExceeded,
    RequirementError,
)
from synthesis.agent.knowledge import KnowledgeBase, KnowledgeExample
from synthesis.agent.orchestrator import (
    Identity,
    PipelineConfig,
    SynthesisPipeline,
    build_synthesis_request,
    run_synthesis_generator,
)
from synthesis.agent.quota import InMemoryQuotaLedger
from synthesis.tests.factories import (
    ScriptedService,
    candidate_payload,
    make_catalyst,
    make_modifier,
    make_vessel,
    text_response,
    tool_call_response,
)

DESIGN_TEXT = "【Name】Storm Riposte\n【Rationale】Answer attacks with thunder.\n【Mechanism Framework】Strike back when missed."

TRIGGERED_PAYLOAD = candidate_payload(
    action_type="action",
    description={
        "value": "<p><strong>Trigger</strong> You are missed.</p><hr /><p>You strike back with crackling force.</p>"
    },
    traits=["fighter", "made-up"],
)


def _config(**overrides) -> PipelineConfig:
    values = {
        "design_stage_enabled": True,
        "format_stage_enabled": False,
        "design_model": "design-model",
        "generate_model": "generate-model",
        "format_model": "format-model",
        "retry_delay_seconds": 0,
    }
    values.update(overrides)
    return PipelineConfig(**values)


def _request(*, with_catalyst: bool = False, target: TargetSpec | None = None) -> SynthesisRequest:
    materials = [make_modifier()]
    if with_catalyst:
        materials.append(make_catalyst())
    return SynthesisRequest(
        vessel=make_vessel(),
        materials=materials,
        target=target or TargetSpec(level=2, category="class", required_traits=["storm-blessed"]),
    )


class SynthesisPipelineTests(unittest.IsolatedAsyncioTestCase):
    def _pipeline(self, service, *, ledger=None, knowledge_base=None, **config) -> SynthesisPipeline:
        self.ledger = ledger or InMemoryQuotaLedger({"player": 2})
        return SynthesisPipeline(
            llm=service,
            knowledge_base=knowledge_base or KnowledgeBase(),
            ledger=self.ledger,
            config=_config(**config),
            schema=FEAT,
            rng=random.Random(0),
        )

    async def test_design_then_generate_passes_plan_as_brief(self):
        service = ScriptedService([text_response(DESIGN_TEXT), tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service)

        result = await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(result.stages_run, ["design", "generate"])
        self.assertEqual(len(service.calls), 2)
        design_messages, design_options = service.calls[0]
        self.assertEqual(design_options.model, "design-model")
        generate_messages, generate_options = service.calls[1]
        self.assertEqual(generate_options.model, "generate-model")
        self.assertEqual(generate_options.tool_choice, FEAT.tool_choice())
        user_prompt = generate_messages[1]["content"]
        self.assertIn("Authoritative creative brief", user_prompt)
        self.assertIn("Storm Riposte", user_prompt)
        self.assertLess(user_prompt.index("Storm Riposte"), user_prompt.index("## Flavor elements"))

    async def test_catalyst_skips_design_even_when_enabled(self):
        service = ScriptedService([tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service)

        result = await pipeline.synthesize(_request(with_catalyst=True), Identity(id="player"))

        self.assertEqual(result.stages_run, ["generate"])
        self.assertEqual(len(service.calls), 1)

    async def test_design_can_be_disabled(self):
        service = ScriptedService([tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service, design_stage_enabled=False)

        result = await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(result.stages_run, ["generate"])

    async def test_unparseable_generate_is_attempted_exactly_three_times(self):
        service = ScriptedService([text_response("Sorry, no JSON today.")])
        pipeline = self._pipeline(service, design_stage_enabled=False)

        with self.assertRaises(GenerationFailed) as ctx:
            await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(len(service.calls), 3)
        self.assertEqual(ctx.exception.stage, "generate")
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIn("No extraction strategy", ctx.exception.reason)
        self.assertEqual(await self.ledger.get_balance("player"), 2)

    async def test_generate_recovers_on_third_attempt_and_mentions_retry(self):
        service = ScriptedService(
            [
                text_response("nope"),
                tool_call_response(candidate_payload(description={"value": "short"})),
                tool_call_response(candidate_payload()),
            ]
        )
        pipeline = self._pipeline(service, design_stage_enabled=False)

        result = await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(result.generate_attempts, 3)
        retry_prompt = service.calls[2][0][1]["content"]
        self.assertIn("Description too short", retry_prompt)

    async def test_service_errors_count_as_generate_failures(self):
        service = ScriptedService([GenerativeServiceError("boom"), tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service, design_stage_enabled=False)

        result = await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(result.generate_attempts, 2)

    async def test_design_failure_is_terminal_without_retry(self):
        service = ScriptedService([GenerativeServiceError("down")])
        pipeline = self._pipeline(service)

        with self.assertRaises(GenerationFailed) as ctx:
            await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(ctx.exception.stage, "design")
        self.assertEqual(len(service.calls), 1)

    async def test_format_failure_keeps_generated_object(self):
        service = ScriptedService([tool_call_response(candidate_payload()), text_response("garbled")])
        pipeline = self._pipeline(service, design_stage_enabled=False, format_stage_enabled=True)

        result = await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(result.stages_run, ["generate"])
        self.assertEqual(result.candidate.name, "Storm Strike")
        self.assertIn("format_degraded", [d.code for d in result.diagnostics])
        self.assertEqual(len(service.calls), 2)

    async def test_format_stage_result_is_used(self):
        service = ScriptedService(
            [
                tool_call_response(candidate_payload()),
                tool_call_response(candidate_payload(level=3)),
            ]
        )
        pipeline = self._pipeline(service, design_stage_enabled=False, format_stage_enabled=True)

        result = await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(result.stages_run, ["generate", "format"])
        self.assertEqual(result.candidate.level, 3)
        format_messages, format_options = service.calls[1]
        self.assertEqual(format_options.model, "format-model")
        self.assertEqual(json.loads(format_messages[1]["content"])["name"], "Storm Strike")

    async def test_result_is_sanitized_and_quota_consumed_once(self):
        service = ScriptedService([tool_call_response(TRIGGERED_PAYLOAD)])
        pipeline = self._pipeline(service, design_stage_enabled=False)

        result = await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertNotIn("Trigger", result.candidate.description.value)
        self.assertEqual(result.candidate.traits, ["fighter", "storm-blessed"])
        codes = [d.code for d in result.diagnostics]
        self.assertIn("trigger_repaired", codes)
        self.assertIn("traits_dropped", codes)
        self.assertEqual(await self.ledger.get_balance("player"), 1)

    async def test_privileged_identity_bypasses_ledger(self):
        service = ScriptedService([tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service, ledger=InMemoryQuotaLedger(), design_stage_enabled=False)

        result = await pipeline.synthesize(_request(), Identity(id="gm", privileged=True))

        self.assertEqual(result.candidate.name, "Storm Strike")
        self.assertEqual(await self.ledger.get_balance("gm"), 0)

    async def test_quota_exceeded_discards_object(self):
        service = ScriptedService([tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service, ledger=InMemoryQuotaLedger({"player": 0}), design_stage_enabled=False)

        with self.assertRaises(QuotaExceeded):
            await pipeline.synthesize(_request(), Identity(id="player"))

        self.assertEqual(len(service.calls), 1)

    async def test_concurrent_requests_with_one_unit_left(self):
        ledger = InMemoryQuotaLedger({"player": 1})
        service = ScriptedService([tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service, ledger=ledger, design_stage_enabled=False)

        outcomes = await asyncio.gather(
            pipeline.synthesize(_request(), Identity(id="player")),
            pipeline.synthesize(_request(), Identity(id="player")),
            return_exceptions=True,
        )

        successes = [o for o in outcomes if not isinstance(o, Exception)]
        failures = [o for o in outcomes if isinstance(o, QuotaExceeded)]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertEqual(await ledger.get_balance("player"), 0)

    async def test_cancellation_before_generate_returns_leaves_ledger_untouched(self):
        started = asyncio.Event()

        class HangingService:
            async def call(self, messages, options=None):
                started.set()
                await asyncio.sleep(3600)

        pipeline = self._pipeline(HangingService(), design_stage_enabled=False)
        task = asyncio.create_task(pipeline.synthesize(_request(), Identity(id="player")))
        await started.wait()
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(await self.ledger.get_balance("player"), 2)

    async def test_knowledge_base_feeds_generate_prompt(self):
        knowledge = KnowledgeBase(
            format_guidance="Use <p> tags for every paragraph.",
            examples=[KnowledgeExample(name="Sudden Charge", class_name="Fighter", text="Stride twice, then Strike.")],
        )
        service = ScriptedService([tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service, knowledge_base=knowledge, design_stage_enabled=False)
        request = _request(target=TargetSpec(level=1, class_name="Fighter"))

        await pipeline.synthesize(request, Identity(id="player"))

        messages, _ = service.calls[0]
        self.assertIn("Use <p> tags", messages[0]["content"])
        self.assertIn("Sudden Charge", messages[1]["content"])

    async def test_event_stream_reports_errors_as_final_event(self):
        service = ScriptedService([text_response("nothing useful")])
        pipeline = self._pipeline(service, design_stage_enabled=False)

        events = [json.loads(e) async for e in run_synthesis_generator(pipeline, _request(), Identity(id="player"))]

        self.assertEqual(events[0]["status"], "starting")
        self.assertEqual([e["status"] for e in events].count("generate_retry"), 2)
        self.assertEqual(events[-1]["status"], "error")
        self.assertEqual(events[-1]["error"], "GenerationFailed")

    async def test_event_stream_ends_with_completed_result(self):
        service = ScriptedService([tool_call_response(candidate_payload())])
        pipeline = self._pipeline(service, design_stage_enabled=False)

        events = [json.loads(e) async for e in run_synthesis_generator(pipeline, _request(), Identity(id="player"))]

        self.assertEqual(events[-1]["status"], "completed")
        self.assertEqual(events[-1]["result"]["candidate"]["name"], "Storm Strike")
        self.assertIn("design_skipped", [e["status"] for e in events])


class BuildSynthesisRequestTests(unittest.TestCase):
    def test_request_is_built_from_raw_items_and_vessel_configuration(self):
        items = [
            RawItem(
                id="v",
                name="Thunder Shrine",
                tags=["shrine"],
                private_text="LEVEL: 5\nCATEGORY: class\nREQUIRED_TRAITS: fighter\nMECHANISM_COMPLEXITY: complex",
            ),
            RawItem(id="m", name="Spark", tags=["fragment"]),
        ]

        request = build_synthesis_request(items, TargetSpec(required_traits=["Homebrew"]))

        self.assertEqual(request.vessel.id, "v")
        self.assertEqual([m.id for m in request.materials], ["m"])
        self.assertEqual(request.target.level, 5)
        self.assertEqual(request.target.category, "class")
        self.assertEqual(request.target.required_traits, ["homebrew", "fighter"])
        self.assertEqual(request.target.mechanism_complexity, "complex")

    def test_caller_values_win_over_vessel_configuration(self):
        items = [
            RawItem(id="v", name="Shrine", tags=["shrine"], private_text="LEVEL: 5\nCATEGORY: skill"),
            RawItem(id="m", name="Spark", tags=["fragment"]),
        ]

        request = build_synthesis_request(items, TargetSpec(level=2, category="general"))

        self.assertEqual(request.target.level, 2)
        self.assertEqual(request.target.category, "general")

    def test_unclassifiable_item_fails_before_any_service_call(self):
        items = [RawItem(id="v", name="Shrine", tags=["shrine"]), RawItem(id="x", name="Pebble")]

        with self.assertRaises(ClassificationError):
            build_synthesis_request(items)

    def test_unmet_requirements_raise(self):
        items = [RawItem(id="v", name="Shrine", tags=["shrine"])]

        with self.assertRaises(RequirementError) as ctx:
            build_synthesis_request(items)

        self.assertFalse(ctx.exception.validation.is_valid)
        self.assertEqual(len(ctx.exception.validation.errors), 1)

    def test_accepted_requests_have_exactly_one_vessel(self):
        items = [
            RawItem(id="v", name="Shrine", tags=["shrine"]),
            RawItem(id="m", name="Spark", tags=["fragment"]),
            RawItem(id="c", name="Gift of Tlaloc"),
        ]

        request = build_synthesis_request(items)

        roles = [request.vessel.role] + [m.role for m in request.materials]
        self.assertEqual(sum(1 for role in roles if role.value == "vessel"), 1)

# =============================================================================
# Agents Package — Bounded Multi-Agent Orchestration
# =============================================================================
#   - state.py: per-query accumulator (messages, data, next target, visits)
#   - supervisor.py: routing classifier with the hard visit bound
#   - workers.py: specialist step (reason, call tools, merge, count)
#   - bridge.py: executes tool calls, converts failures to error payloads
#   - synthesis.py: final user-facing answer
#   - orchestrator.py: explicit driver loop over the nodes above
#   - domains.py / advisors.py: crypto, stock and forex assemblies
#
# Flow: Start → Supervisor ⇄ Worker(X) → FinalSynthesis → End
# =============================================================================

"""Engine plumbing: persisted state, workflow result ingestion and orchestration.

Key Components:
    - StateManager: Explicit handle over the persisted state directory
    - load_workflow_result: Parse a workflow result into step outcomes
    - FeedbackOrchestrator: Runs the analyze, score and report operations
"""

def seeding_payload(team_id: int, round_number: int, score) -> dict:
    return {
        "team_id": {"value": team_id},
        "round": {"value": round_number},
        "grand_total": {"value": score},
    }


def bracket_payload(winner_id: int, team1_score: int = None, team2_score: int = None) -> dict:
    data = {"winner_team_id": {"value": winner_id}}
    if team1_score is not None:
        data["team1_score"] = {"value": team1_score}
    if team2_score is not None:
        data["team2_score"] = {"value": team2_score}
    return data
